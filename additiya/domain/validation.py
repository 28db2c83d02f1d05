"""
Local form rules for the sign-in, sign-up and profile-edit forms.

Each function returns a mapping of field name to message; an empty mapping
means the form is valid. A non-empty mapping is raised to callers as
``ValidationError`` and never reaches the network.
"""

import re
from collections.abc import Mapping

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_NAME_LENGTH = 2
MIN_ADDRESS_LENGTH = 10
MIN_PHONE_LENGTH = 10
MIN_PASSWORD_LENGTH = 6


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email.strip()))


def validate_profile_fields(values: Mapping[str, str]) -> dict[str, str]:
    """Rules shared by the sign-up and profile-edit forms."""
    errors: dict[str, str] = {}

    name = values.get("name", "").strip()
    if not name:
        errors["name"] = "Name is required"
    elif len(name) < MIN_NAME_LENGTH:
        errors["name"] = f"Name must be at least {MIN_NAME_LENGTH} characters"

    email = values.get("email", "").strip()
    if not email:
        errors["email"] = "Email is required"
    elif not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"

    address = values.get("address", "").strip()
    if not address:
        errors["address"] = "Address is required"
    elif len(address) < MIN_ADDRESS_LENGTH:
        errors["address"] = f"Address must be at least {MIN_ADDRESS_LENGTH} characters"

    phone = values.get("phone", "").strip()
    if not phone:
        errors["phone"] = "Phone number is required"
    elif len(phone) < MIN_PHONE_LENGTH:
        errors["phone"] = f"Phone number must be at least {MIN_PHONE_LENGTH} characters"

    return errors


def validate_login(email: str, password: str) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not email.strip():
        errors["email"] = "Email is required"
    elif not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"
    if not password:
        errors["password"] = "Password is required"
    return errors


def validate_registration(values: Mapping[str, str]) -> dict[str, str]:
    errors = validate_profile_fields(values)

    password = values.get("password", "")
    if not password:
        errors["password"] = "Password is required"
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"

    confirm = values.get("confirm_password", "")
    if not confirm:
        errors["confirm_password"] = "Please confirm your password"
    elif password != confirm:
        errors["confirm_password"] = "Passwords do not match"

    return errors
