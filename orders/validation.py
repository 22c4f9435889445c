"""
Input validation for the order, kitchen and billing operations.

The rules themselves live on the DRF input serializers. Service calls run
their arguments through the same serializers before they read or write
anything, so malformed input fails with ValidationError and never reaches
the database, whether it arrived over HTTP or from a direct caller.
"""
from rest_framework import serializers

from erp.errors import ValidationError

from .serializers import id_field


def describe(errors):
    """First message of a DRF error dict or list, prefixed with its field."""
    if isinstance(errors, dict):
        field, messages = next(iter(errors.items()))
        return f'{field}: {describe(messages)}'
    if isinstance(errors, list):
        return describe(errors[0])
    return str(errors)


def validate_input(serializer_class, **data):
    """Validate data with an input serializer and return its validated_data."""
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError(describe(serializer.errors))
    return serializer.validated_data


def validate_id(value, name='id'):
    try:
        return id_field().run_validation(value)
    except serializers.ValidationError as exc:
        raise ValidationError(f'{name}: {describe(exc.detail)}') from exc
