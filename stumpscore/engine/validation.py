"""Input validation for account and card details.

Validators raise ``ValidationError`` with the first problem found; the card
validator instead returns every field error so a form can show them all.
"""

import re
from datetime import datetime
from typing import Dict, Optional

from stumpscore.errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EXPIRY_RE = re.compile(r"^(\d{2})/(\d{2})$")

MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 100


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_email(email: Optional[str]) -> str:
    """Return the normalized email or raise ValidationError."""
    normalized = normalize_email(email or "")
    if not EMAIL_RE.match(normalized):
        raise ValidationError("Please provide a valid email")
    return normalized


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Please provide a name")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return name


def validate_registration(name: Optional[str], email: Optional[str], password: Optional[str]) -> tuple:
    """Validate signup input.

    Returns:
        (name, normalized_email, password)

    Raises:
        ValidationError: On the first invalid field
    """
    if not name or not email or not password:
        raise ValidationError("Please provide all required fields")
    return validate_name(name), validate_email(email), validate_password(password)


def validate_login(email: Optional[str], password: Optional[str]) -> tuple:
    if not email or not password:
        raise ValidationError("Please provide email and password")
    return validate_email(email), password


def validate_card_details(
    card_number: Optional[str],
    expiry_date: Optional[str],
    cvv: Optional[str],
    cardholder_name: Optional[str],
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """Basic card form checks for the legacy card entry point.

    Returns:
        Mapping of field name to error message; empty when the card is valid
    """
    now = now or datetime.utcnow()
    errors: Dict[str, str] = {}

    digits = re.sub(r"\s", "", card_number or "")
    if len(digits) != 16 or not digits.isdigit():
        errors["card_number"] = "Please enter a valid 16-digit card number"

    match = EXPIRY_RE.match(expiry_date or "")
    if not match:
        errors["expiry_date"] = "Please enter a valid expiry date (MM/YY)"
    else:
        month, year = int(match.group(1)), int(match.group(2))
        current_year = now.year % 100
        if month < 1 or month > 12:
            errors["expiry_date"] = "Please enter a valid expiry date (MM/YY)"
        elif year < current_year or (year == current_year and month < now.month):
            errors["expiry_date"] = "Card has expired"

    if not cvv or not cvv.isdigit() or len(cvv) < 3 or len(cvv) > 4:
        errors["cvv"] = "Please enter a valid CVV"

    if not cardholder_name or len(cardholder_name.strip()) < 3:
        errors["cardholder_name"] = "Please enter the cardholder name"

    return errors
