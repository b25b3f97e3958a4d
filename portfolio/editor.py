"""
Edit buffer for the multi-step portfolio form.

The buffer owns the in-progress state of one record while it is being edited:
the active step, scalar fields, the repeating groups and the profile picture.
populate_form() and collect_form_data() translate between the buffer and a
plain record dict.
"""
import base64
import copy
from enum import Enum

from .model import COLLECTION_FIELDS, PICTURE_FIELD, SCALAR_FIELDS, SkillLevel
from .validator import FIELD_VALIDATORS, STRICT_FIELD_VALIDATORS

STEPS = ("profile", "experience", "education", "extras")

STEP_CONTENTS = {
    1: SCALAR_FIELDS + (PICTURE_FIELD,),
    2: ("experience",),
    3: ("education",),
    4: ("skills", "projects"),
}


class GroupKind(str, Enum):
    EXPERIENCE = "experience"
    EDUCATION = "education"
    SKILLS = "skills"
    PROJECTS = "projects"

    @property
    def fields(self) -> tuple:
        return COLLECTION_FIELDS[self.value]

    def blank_row(self) -> dict:
        row = {name: "" for name in self.fields}
        if self is GroupKind.SKILLS:
            row["level"] = SkillLevel.INTERMEDIATE.value
        return row

    def keeps(self, row: dict) -> bool:
        """False for rows blank in their primary field(s); those are not saved."""
        if self is GroupKind.EXPERIENCE:
            return bool(row["title"] or row["company"])
        if self is GroupKind.EDUCATION:
            return bool(row["degree"] or row["institution"])
        if self is GroupKind.SKILLS:
            return bool(row["name"])
        return bool(row["title"])


class PictureState(str, Enum):
    LOCAL = "local"      # newly selected file, uploaded at save time
    HOSTED = "hosted"    # already on the media host, kept as-is
    ABSENT = "absent"


class EditBuffer:
    def __init__(self, strict: bool = False):
        self.step_count = len(STEPS)
        self.validators = STRICT_FIELD_VALIDATORS if strict else FIELD_VALIDATORS
        self._clear()

    def _clear(self):
        self.current_step = 1
        self.fields = {name: "" for name in SCALAR_FIELDS}
        self.groups = {kind: [] for kind in GroupKind}
        self.picture_state = PictureState.ABSENT
        self.picture = None
        self.invalid = set()
        self._row_counter = 0

    # ------------------ STEPS ------------------

    @property
    def can_go_back(self) -> bool:
        return self.current_step > 1

    @property
    def can_go_forward(self) -> bool:
        return self.current_step < self.step_count

    def next_step(self) -> int:
        if self.can_go_forward:
            self.current_step += 1
        return self.current_step

    def prev_step(self) -> int:
        if self.can_go_back:
            self.current_step -= 1
        return self.current_step

    def go_to_step(self, step: int) -> int:
        self.current_step = max(1, min(int(step), self.step_count))
        return self.current_step

    def visible_fields(self) -> tuple:
        return STEP_CONTENTS[self.current_step]

    # ------------------ SCALAR FIELDS ------------------

    def set_field(self, name: str, value) -> bool:
        """Store a scalar field and return its live-validation result."""
        if not isinstance(name, str) or name not in self.fields:
            raise ValueError(f"Unknown field: {name}")
        self.fields[name] = "" if value is None else str(value)
        return self._mark(name, name, self.fields[name])

    def _mark(self, key: str, field: str, value) -> bool:
        validator = self.validators.get(field)
        is_valid = validator(value) if validator else True
        if is_valid:
            self.invalid.discard(key)
        else:
            self.invalid.add(key)
        return is_valid

    # ------------------ REPEATING GROUPS ------------------

    def _new_row_id(self) -> str:
        self._row_counter += 1
        return f"row{self._row_counter}"

    def _find(self, kind: GroupKind, row_id: str) -> int:
        for index, row in enumerate(self.groups[kind]):
            if row["rowId"] == row_id:
                return index
        raise KeyError(f"No {kind.value} row {row_id}")

    def add_item(self, kind, initial: dict = None) -> str:
        kind = GroupKind(kind)
        if initial is not None and not isinstance(initial, dict):
            raise ValueError(f"Initial {kind.value} values must be an object.")
        row = kind.blank_row()
        for name in kind.fields:
            if initial and initial.get(name) is not None:
                row[name] = str(initial[name])
        if kind is GroupKind.SKILLS:
            row["level"] = SkillLevel.coerce(row["level"])
        row["rowId"] = self._new_row_id()
        self.groups[kind].append(row)
        return row["rowId"]

    def update_item(self, kind, row_id: str, **values) -> bool:
        """Edit sub-fields of one row. Returns False if any edited field is invalid."""
        kind = GroupKind(kind)
        row = self.groups[kind][self._find(kind, row_id)]
        all_valid = True
        for name, value in values.items():
            if name not in kind.fields:
                raise ValueError(f"Unknown {kind.value} field: {name}")
            row[name] = "" if value is None else str(value)
            if kind is GroupKind.SKILLS and name == "level":
                row[name] = SkillLevel.coerce(row[name])
            if kind is GroupKind.PROJECTS:
                all_valid = self._mark(f"{kind.value}.{row_id}.{name}", name, row[name]) and all_valid
        return all_valid

    def remove_item(self, kind, row_id: str):
        # Groups may become empty; add_item stays available at zero rows.
        kind = GroupKind(kind)
        del self.groups[kind][self._find(kind, row_id)]
        prefix = f"{kind.value}.{row_id}."
        self.invalid = {key for key in self.invalid if not key.startswith(prefix)}

    def move_item(self, kind, row_id: str, new_index: int) -> int:
        kind = GroupKind(kind)
        rows = self.groups[kind]
        try:
            position = int(new_index)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid position: {new_index}") from None
        row = rows.pop(self._find(kind, row_id))
        new_index = max(0, min(position, len(rows)))
        rows.insert(new_index, row)
        return new_index

    # ------------------ PROFILE PICTURE ------------------

    def select_picture(self, data: bytes, mimetype: str) -> bool:
        """Read a selected image file into an inline data URL. No upload happens here."""
        if not mimetype or not mimetype.startswith("image/"):
            return False
        encoded = base64.b64encode(data).decode("ascii")
        self.picture = f"data:{mimetype};base64,{encoded}"
        self.picture_state = PictureState.LOCAL
        return True

    def mark_uploaded(self, url: str):
        self.picture = url
        self.picture_state = PictureState.HOSTED

    def remove_picture(self):
        self.picture = None
        self.picture_state = PictureState.ABSENT

    def _load_picture(self, value):
        if isinstance(value, str) and value.startswith("data:image"):
            self.picture, self.picture_state = value, PictureState.LOCAL
        elif isinstance(value, str) and value.startswith(("http://", "https://")):
            self.picture, self.picture_state = value, PictureState.HOSTED
        else:
            self.remove_picture()

    # ------------------ RECORD CONVERSION ------------------

    def reset(self):
        """Empty form for a new portfolio: one blank row per group."""
        self._clear()
        for kind in GroupKind:
            self.add_item(kind)

    def populate_form(self, record: dict):
        self._clear()
        for name in SCALAR_FIELDS:
            value = record.get(name)
            self.fields[name] = "" if value is None else str(value)
        self._load_picture(record.get(PICTURE_FIELD))
        for kind in GroupKind:
            items = record.get(kind.value)
            if isinstance(items, list) and items:
                for item in items:
                    self.add_item(kind, item)
            else:
                self.add_item(kind)

    def collect_form_data(self) -> dict:
        data = dict(self.fields)
        data[PICTURE_FIELD] = self.picture if self.picture_state is not PictureState.ABSENT else None
        for kind in GroupKind:
            rows = []
            for row in self.groups[kind]:
                item = {name: str(row.get(name) or "").strip() for name in kind.fields}
                if kind.keeps(item):
                    rows.append(item)
            data[kind.value] = rows
        return data

    def to_dict(self) -> dict:
        """Snapshot for API responses."""
        return {
            "currentStep": self.current_step,
            "stepCount": self.step_count,
            "stepName": STEPS[self.current_step - 1],
            "canGoBack": self.can_go_back,
            "canGoForward": self.can_go_forward,
            "visible": list(self.visible_fields()),
            "fields": dict(self.fields),
            "groups": {kind.value: copy.deepcopy(rows) for kind, rows in self.groups.items()},
            "picture": {"state": self.picture_state.value, "value": self.picture},
            "invalid": sorted(self.invalid),
        }
