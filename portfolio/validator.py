import re
from urllib.parse import urlsplit

# local@domain, where domain is dotted labels ending in a 2+ letter TLD or a bracketed IPv4 literal
EMAIL_RE = re.compile(
    r'^(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r"@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$"
)


LINK_SCHEMES = ("http", "https")


def is_non_empty(value) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_valid_email(value) -> bool:
    """Email is optional: empty or missing counts as valid."""
    if not value:
        return True
    return bool(EMAIL_RE.match(str(value).lower()))


def is_valid_url(value) -> bool:
    """
    URLs are optional: empty or blank counts as valid.
    Otherwise the value must be an absolute http(s) URL with a host and no whitespace.
    """
    if value is None or not str(value).strip():
        return True
    text = str(value).strip()
    if any(ch.isspace() for ch in text):
        return False
    try:
        parts = urlsplit(text)
    except ValueError:
        return False
    return parts.scheme.lower() in LINK_SCHEMES and bool(parts.netloc)


# Used by the editor for advisory, per-field validation while typing.
FIELD_VALIDATORS = {
    "portfolioTitle": is_non_empty,
    "firstName": is_non_empty,
    "email": is_valid_email,
    "liveUrl": is_valid_url,
    "repoUrl": is_valid_url,
}

# lastName is only required when strict validation is on.
STRICT_FIELD_VALIDATORS = {**FIELD_VALIDATORS, "lastName": is_non_empty}


def validate_portfolio(record: dict, strict: bool = False) -> list:
    """
    Check a collected portfolio before it is saved.

    Returns a list of {"field", "message"} dicts, empty when the record can be
    persisted. Errors follow field order, then project order.
    """
    errors = []

    def add(field, message):
        errors.append({"field": field, "message": message})

    if not is_non_empty(record.get("portfolioTitle")):
        add("portfolioTitle", "Portfolio Title is required.")
    if not is_non_empty(record.get("firstName")):
        add("firstName", "First Name is required.")
    if strict and not is_non_empty(record.get("lastName")):
        add("lastName", "Last Name is required.")
    if not is_valid_email(record.get("email")):
        add("email", "Please enter a valid Email Address.")

    for index, project in enumerate(record.get("projects") or []):
        if not is_valid_url(project.get("liveUrl")):
            add(f"projects[{index}].liveUrl", f"Project {index + 1}: Live Demo URL is invalid.")
        if not is_valid_url(project.get("repoUrl")):
            add(f"projects[{index}].repoUrl", f"Project {index + 1}: Source Code URL is invalid.")

    return errors
