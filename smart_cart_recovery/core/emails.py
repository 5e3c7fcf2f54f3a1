"""Email address normalization shared by capture, sending and reconciliation."""

from email_validator import EmailNotValidError, validate_email


def normalize_email(value: str | None) -> str | None:
    """Return the normalized address, or None if it is empty or malformed.

    Capture and order reconciliation must agree on the stored form, so both
    go through here. Deliverability (DNS) is not checked.
    """
    if not value or not value.strip():
        return None
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        return None
