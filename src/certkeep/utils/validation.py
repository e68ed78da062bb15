"""Input validation utilities."""

import re

# SQL identifier: letters, digits and underscores, not starting with a digit
SAFE_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(value: str, name: str = "identifier", max_length: int = 63) -> str:
    """Validate a name that is interpolated into SQL (table names).

    Args:
        value: The identifier to validate
        name: Name of the field for error messages
        max_length: Maximum allowed length (PostgreSQL's limit by default)

    Returns:
        The validated identifier

    Raises:
        ValueError: If the identifier is invalid
    """
    if not value:
        raise ValueError(f"{name} cannot be empty")

    if len(value) > max_length:
        raise ValueError(f"{name} exceeds maximum length of {max_length}")

    if not SAFE_IDENTIFIER_RE.match(value):
        raise ValueError(
            f"Invalid {name}: must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores"
        )

    return value


def validate_key(key: str) -> str:
    """Validate a storage key.

    Keys are opaque; the only requirement is a non-empty string.

    Raises:
        ValueError: If the key is empty or not a string
    """
    if not isinstance(key, str):
        raise ValueError(f"Key must be a string, got {type(key).__name__}")
    if not key:
        raise ValueError("Key cannot be empty")
    return key
