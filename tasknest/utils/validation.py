"""Shared validation utilities for tasknest."""
import re

from tasknest.exceptions import ValidationError

# Email validation pattern
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

# Default constraints
DEFAULT_MIN_PASSWORD_LENGTH = 6
DEFAULT_MAX_UPLOAD_MB = 10


def validate_email(email: str) -> None:
    """
    Validate email format.

    :param email: Email address to validate
    :raises ValidationError: If email format is invalid
    """
    if not email or not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")


def validate_password(password: str, min_length: int = DEFAULT_MIN_PASSWORD_LENGTH) -> None:
    """
    Validate password meets minimum requirements.

    :param password: Password to validate
    :param min_length: Minimum required length (default 6)
    :raises ValidationError: If password is too short
    """
    if not password or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")


def validate_non_empty(value: str, field_name: str) -> None:
    """
    Validate that a string value is non-empty.

    :param value: Value to validate
    :param field_name: Name of the field for error messages
    :raises ValidationError: If value is empty or whitespace-only
    """
    if not value or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")


def validate_id(value: str, field_name: str = "ID") -> None:
    """
    Validate that an ID is non-empty.

    :param value: ID value to validate
    :param field_name: Name of the field for error messages (default "ID")
    :raises ValidationError: If ID is empty
    """
    validate_non_empty(value, field_name)


def validate_file_size(size_bytes: int, max_mb: int = DEFAULT_MAX_UPLOAD_MB) -> None:
    """
    Validate an attachment is within the upload size limit.

    :param size_bytes: Size of the file in bytes
    :param max_mb: Maximum allowed size in megabytes (default 10)
    :raises ValidationError: If the file is larger than the limit
    """
    if size_bytes > max_mb * 1024 * 1024:
        raise ValidationError(f"File size must be less than {max_mb}MB")
