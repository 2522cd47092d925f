"""
Input validation and sanitization utilities.

These guard the seams where callers hand identifiers, image refs and numeric
values to the pipeline.
"""

import math
import re
from pathlib import PurePosixPath
from typing import List, Optional, Union

from cardlens.utils.error_handler import InvalidInputError


IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.:\-]{0,127}$')


def clamp_confidence(value: Optional[float]) -> float:
    """Clamp a confidence into [0, 1]; None and NaN become 0."""
    if value is None:
        return 0.0
    value = float(value)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def validate_confidence(value: Union[int, float], field_name: str = "confidence") -> float:
    """
    Validate that a confidence lies in [0, 1].

    Raises:
        InvalidInputError: If the value is not a number in range
    """
    return validate_numeric_range(value, 0.0, 1.0, field_name)


def validate_numeric_range(
    value: Union[int, float],
    min_value: Optional[Union[int, float]] = None,
    max_value: Optional[Union[int, float]] = None,
    field_name: str = "value"
) -> float:
    """
    Validate that a numeric value is within specified range.

    Args:
        value: Numeric value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive)
        field_name: Name of the field for error messages

    Returns:
        The value as a float

    Raises:
        InvalidInputError: If value is outside allowed range
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise InvalidInputError(
            f"{field_name} must be a number",
            details={"field_name": field_name, "value": value}
        )

    if min_value is not None and value < min_value:
        raise InvalidInputError(
            f"{field_name} must be at least {min_value}",
            details={"field_name": field_name, "value": value, "min_value": min_value}
        )

    if max_value is not None and value > max_value:
        raise InvalidInputError(
            f"{field_name} must be at most {max_value}",
            details={"field_name": field_name, "value": value, "max_value": max_value}
        )

    return float(value)


def validate_identifier(value: str, field_name: str = "id") -> str:
    """
    Validate an owner or card identifier.

    Raises:
        InvalidInputError: If the identifier is empty or contains unsafe characters
    """
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.match(value.strip()):
        raise InvalidInputError(
            f"Invalid {field_name}: {value!r}",
            details={"field_name": field_name, "value": value}
        )
    return value.strip()


def validate_image_ref(ref: str) -> str:
    """
    Validate an image reference: a relative path that stays inside its store.

    Raises:
        InvalidInputError: If the ref is empty, absolute or escapes the root
    """
    if not isinstance(ref, str) or not ref.strip():
        raise InvalidInputError("Image ref cannot be empty", details={"ref": ref})

    path = PurePosixPath(ref.strip().replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise InvalidInputError(
            f"Image ref must be a relative path inside the image store: {ref}",
            details={"ref": ref}
        )
    return str(path)


def validate_url(url: str, allowed_schemes: Optional[List[str]] = None) -> str:
    """
    Validate a URL string.

    Raises:
        InvalidInputError: If URL is invalid
    """
    if allowed_schemes is None:
        allowed_schemes = ['http', 'https']

    url_pattern = re.compile(
        r'^(?P<scheme>[a-z][a-z0-9+.-]*)://'
        r'(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,63}\.?|'  # domain...
        r'localhost|'  # localhost...
        r'\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})'  # ...or ip
        r'(?::\d+)?'  # optional port
        r'(?:/?|[/?]\S+)$', re.IGNORECASE
    )

    match = url_pattern.match(url.strip()) if isinstance(url, str) else None
    if not match:
        raise InvalidInputError(
            f"Invalid URL format: {url}",
            details={"url": url}
        )

    if match.group("scheme").lower() not in allowed_schemes:
        raise InvalidInputError(
            f"URL scheme not allowed: {match.group('scheme')}",
            details={"url": url, "allowed_schemes": allowed_schemes}
        )

    return url.strip()
