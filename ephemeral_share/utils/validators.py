import os
import re
import unicodedata


MAX_FILENAME_LENGTH = 255
USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]{3,50}$')


class PasswordValidationError(Exception):
    """Password validation error exception"""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__('; '.join(errors))


class FilenameValidationError(ValueError):
    pass


def validate_password_complexity(password: str) -> None:
    """
    Validate password complexity requirements.

    Rules:
    - Minimum length of 8 characters
    - At least 1 letter
    - At least 1 digit

    Raises:
        PasswordValidationError: When password does not meet requirements
    """
    errors = []

    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        errors.append("Password must contain at least 1 letter")

    if not re.search(r'\d', password):
        errors.append("Password must contain at least 1 digit")

    if errors:
        raise PasswordValidationError(errors)


def validate_username(username: str) -> str:
    if not USERNAME_PATTERN.match(username):
        raise ValueError(
            "Username must be 3-50 characters of letters, digits, '.', '_' or '-'"
        )
    return username


def sanitize_filename(filename: str | None) -> str:
    """
    Reduce an uploaded filename to a safe display name.

    Drops any directory components (both separators), control characters
    and surrounding whitespace, then truncates to 255 characters keeping the
    extension.

    Raises:
        FilenameValidationError: When nothing usable is left
    """
    if not filename:
        raise FilenameValidationError("Filename is required")

    # Browsers on Windows may send "C:\\fakepath\\name.txt"
    name = filename.replace('\\', '/').split('/')[-1]
    name = ''.join(ch for ch in name if unicodedata.category(ch)[0] != 'C')
    name = name.strip().strip('.')

    if not name:
        raise FilenameValidationError("Filename is empty after sanitization")

    if len(name) > MAX_FILENAME_LENGTH:
        stem, ext = os.path.splitext(name)
        ext = ext[:16]
        name = stem[:MAX_FILENAME_LENGTH - len(ext)] + ext

    return name
