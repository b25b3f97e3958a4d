import json
import re

from loguru import logger

from .editor import EditBuffer, PictureState
from .errors import ImportFormatError
from .model import COLLECTION_FIELDS, PICTURE_FIELD, RECORD_FIELDS, SCALAR_FIELDS, strip_persistence_fields
from .validator import is_non_empty, validate_portfolio


def export_filename(record: dict) -> str:
    title = (record.get("portfolioTitle") or "").strip()
    safe_name = re.sub(r"\s+", "_", title) or "portfolio"
    return f"{safe_name}.json"


def export_json(record: dict) -> tuple:
    """Serialize a record for download, without id, timestamps or visibility."""
    data = strip_persistence_fields(record)
    return json.dumps(data, indent=2, ensure_ascii=False, default=str), export_filename(record)


def parse_import(raw, strict: bool = False) -> dict:
    """
    Parse an uploaded portfolio file into a form payload.

    The payload is always treated as a brand-new portfolio: any id,
    timestamps or visibility flag in the file are discarded. Values go through
    the edit buffer so the result has the same shape as a saved form, and it
    must pass the same validation as a save.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ImportFormatError("File is not UTF-8 text.") from exc
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ImportFormatError(f"Could not parse JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ImportFormatError("File does not appear to be a valid portfolio.")
    if not is_non_empty(data.get("portfolioTitle")) or not is_non_empty(data.get("firstName")):
        raise ImportFormatError("File does not appear to be a valid portfolio.")

    payload = {k: v for k, v in strip_persistence_fields(data).items() if k in RECORD_FIELDS}
    for key in SCALAR_FIELDS + (PICTURE_FIELD,):
        if isinstance(payload.get(key), (dict, list)):
            raise ImportFormatError(f"'{key}' must be text.")
    for key in COLLECTION_FIELDS:
        items = payload.get(key)
        if items is None:
            continue
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise ImportFormatError(f"'{key}' must be a list of entries.")

    buffer = EditBuffer()
    buffer.populate_form(payload)
    if buffer.picture_state is PictureState.LOCAL:
        # An inline image was never uploaded; records only point at hosted pictures.
        logger.warning("Dropping inline profile picture from imported portfolio")
        buffer.remove_picture()
    record = buffer.collect_form_data()

    errors = validate_portfolio(record, strict=strict)
    if errors:
        message = "\n".join(e["message"] for e in errors)
        raise ImportFormatError(f"File contains invalid data:\n{message}")
    return record
