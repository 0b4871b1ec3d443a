"""
Local form validation

Each validator collects per-field messages for the fields that are
currently invalid and raises ValidationError when any are present.
"""
import re
from typing import Any, Dict, Iterable, Optional

from ..errors import ValidationError
from .models import Gender, UserRole

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
MIN_REVIEW_LENGTH = 10
MAX_REVIEW_LENGTH = 1000


def _raise_if_any(errors: Dict[str, str]) -> None:
    if errors:
        raise ValidationError(errors)


def validate_review(rating: Any, comment: Optional[str]) -> None:
    """Rating 1-5 and a comment of reasonable length"""
    errors: Dict[str, str] = {}
    if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
        errors["rating"] = "Please select a rating between 1 and 5"
    text = (comment or "").strip()
    if len(text) < MIN_REVIEW_LENGTH:
        errors["comment"] = f"Review must be at least {MIN_REVIEW_LENGTH} characters"
    elif len(text) > MAX_REVIEW_LENGTH:
        errors["comment"] = f"Review must be at most {MAX_REVIEW_LENGTH} characters"
    _raise_if_any(errors)


def validate_email(email: Optional[str], errors: Dict[str, str]) -> None:
    if not email or not EMAIL_PATTERN.match(email.strip()):
        errors["email"] = "Please enter a valid email address"


def validate_password(password: Optional[str], errors: Dict[str, str]) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password should be at least {MIN_PASSWORD_LENGTH} characters"


def validate_signup(email: Optional[str], password: Optional[str], name: Optional[str], role: UserRole) -> None:
    errors: Dict[str, str] = {}
    if not (name or "").strip():
        errors["name"] = "Name is required"
    validate_email(email, errors)
    validate_password(password, errors)
    if role == UserRole.ADMIN:
        errors["role"] = "Admin accounts cannot be created by signup"
    _raise_if_any(errors)


def validate_new_password(password: Optional[str]) -> None:
    errors: Dict[str, str] = {}
    validate_password(password, errors)
    _raise_if_any(errors)


def validate_hostel(
    name: Optional[str],
    location: Optional[str],
    latitude: Any,
    longitude: Any,
    price_min: Any,
    price_max: Any,
    gender: Any,
    phones: Iterable[str] = (),
) -> None:
    """Required listing fields for create/update"""
    errors: Dict[str, str] = {}
    if not (name or "").strip():
        errors["name"] = "Hostel name is required"
    if not (location or "").strip():
        errors["location"] = "Location is required"
    if not isinstance(latitude, (int, float)) or not -90 <= latitude <= 90:
        errors["latitude"] = "Latitude must be between -90 and 90"
    if not isinstance(longitude, (int, float)) or not -180 <= longitude <= 180:
        errors["longitude"] = "Longitude must be between -180 and 180"
    if not isinstance(price_min, int) or price_min < 0:
        errors["price_min"] = "Minimum price must be a non-negative whole number"
    if not isinstance(price_max, int) or price_max < 0:
        errors["price_max"] = "Maximum price must be a non-negative whole number"
    elif isinstance(price_min, int) and price_min > price_max:
        errors["price_max"] = "Maximum price must be greater than or equal to minimum price"
    try:
        Gender(gender)
    except ValueError:
        errors["gender"] = "Gender must be male, female or mixed"
    for phone in phones:
        if not re.fullmatch(r"\+?[0-9 ]{7,15}", phone):
            errors["phone"] = f"Invalid phone number: {phone}"
            break
    _raise_if_any(errors)
