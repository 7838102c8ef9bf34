"""
Custom validators for exchange models.
"""

from django.core.exceptions import ValidationError


def validate_not_blank(value):
    """
    Reject empty or whitespace-only text.

    Raises:
        ValidationError: If value has no visible characters
    """
    if value is None or not str(value).strip():
        raise ValidationError(
            'This field cannot be blank.',
            code='blank'
        )


def validate_latitude(value):
    """
    Validate a latitude in decimal degrees.

    Args:
        value: Latitude to validate

    Raises:
        ValidationError: If latitude is outside [-90, 90]
    """
    if value is None:
        return

    if value < -90 or value > 90:
        raise ValidationError(
            'Latitude must be between -90 and 90 degrees.',
            code='invalid_latitude'
        )


def validate_longitude(value):
    """
    Validate a longitude in decimal degrees.

    Args:
        value: Longitude to validate

    Raises:
        ValidationError: If longitude is outside [-180, 180]
    """
    if value is None:
        return

    if value < -180 or value > 180:
        raise ValidationError(
            'Longitude must be between -180 and 180 degrees.',
            code='invalid_longitude'
        )
