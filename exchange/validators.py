"""
Field validators shared by the exchange models and serializers.
"""

from django.core.exceptions import ValidationError


def validate_reference_pair(reference_id, reference_type):
    """
    Validate that a ledger reference is either complete or absent.

    A reference id without a type cannot be deduplicated, so it is rejected.
    A type alone (for example 'admin_award') is allowed.

    Args:
        reference_id: Id of the referenced record, or None
        reference_type: Kind of the referenced record, or ''

    Raises:
        ValidationError: If an id is given without a type
    """
    if reference_id is not None and not reference_type:
        raise ValidationError(
            'A reference id requires a reference type.',
            code='incomplete_reference'
        )


def validate_points_amount(value):
    """
    Validate a points amount supplied by a client.

    Args:
        value: Amount to validate

    Raises:
        ValidationError: If value is not a positive integer
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            'Points amount must be a whole number.',
            code='invalid_points_type'
        )

    if value <= 0:
        raise ValidationError(
            'Points amount must be greater than 0.',
            code='invalid_points_amount'
        )
