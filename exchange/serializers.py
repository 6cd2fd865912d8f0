"""
Serializers for the exchange API.

Input serializers only check request shape; business rules are enforced by
the services in exchange.services and reported as ExchangeError subclasses.
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .conf import exchange_setting
from .models import PointsTransaction, RedemptionOption, Swap, UserRedemption
from .validators import validate_points_amount

User = get_user_model()


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Token serializer that authenticates with email instead of username.
    """
    username_field = 'email'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if 'username' in self.fields:
            del self.fields['username']
        if 'email' not in self.fields:
            self.fields['email'] = serializers.EmailField()


def _points_field_validator(value):
    try:
        validate_points_amount(value)
    except DjangoValidationError as e:
        raise serializers.ValidationError(e.messages)
    return value


# ============================================================================
# Request serializers
# ============================================================================

class PurchaseSerializer(serializers.Serializer):
    """
    Body of POST /api/products/purchase/.

    Only points purchases are supported; points_used must equal the item's
    price rounded up, which the purchase service verifies under lock.
    """
    product_id = serializers.IntegerField(min_value=1)
    payment_method = serializers.ChoiceField(choices=['points'], default='points')
    points_used = serializers.IntegerField()

    def validate_points_used(self, value):
        return _points_field_validator(value)


class SwapCreateSerializer(serializers.Serializer):
    offered_item_id = serializers.IntegerField(min_value=1)
    requested_item_id = serializers.IntegerField(min_value=1)
    message = serializers.CharField(required=False, allow_blank=True, max_length=1000, default='')


class SwapActionSerializer(serializers.Serializer):
    """Body of PATCH /api/swaps/<id>/."""
    ACTIONS = ['accept', 'reject', 'cancel']

    action = serializers.ChoiceField(
        choices=ACTIONS,
        error_messages={'invalid_choice': 'Invalid action. Must be accept, reject or cancel'}
    )


class RedeemSerializer(serializers.Serializer):
    redemption_option_id = serializers.IntegerField(min_value=1)


class EarnPointsSerializer(serializers.Serializer):
    """
    Body of POST /api/points/earn/.

    The action must name a configured earning rule. Actions keyed on a record
    need its reference_id; periodic actions (daily_login, ...) take none.
    """
    action = serializers.CharField(max_length=50)
    reference_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reference_type = serializers.CharField(required=False, allow_blank=True, max_length=50, default='')

    def validate_action(self, value):
        if value not in exchange_setting('EARNING_RULES'):
            raise serializers.ValidationError('Invalid action for earning points.')
        return value


class AdminAwardSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)
    points = serializers.IntegerField()
    description = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate_points(self, value):
        return _points_field_validator(value)


# ============================================================================
# Response serializers
# ============================================================================

class PointsTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PointsTransaction
        fields = [
            'id',
            'amount',
            'transaction_type',
            'description',
            'reference_id',
            'reference_type',
            'balance_after',
            'created_at',
        ]
        read_only_fields = fields


class RedemptionOptionSerializer(serializers.ModelSerializer):
    remaining = serializers.SerializerMethodField()

    class Meta:
        model = RedemptionOption
        fields = [
            'id',
            'title',
            'description',
            'points_required',
            'reward_type',
            'reward_value',
            'max_redemptions_per_user',
            'total_available',
            'total_redeemed',
            'remaining',
            'expires_at',
        ]
        read_only_fields = fields

    def get_remaining(self, obj):
        """Units left under the availability cap, or None when uncapped."""
        if obj.total_available is None:
            return None
        return max(obj.total_available - obj.total_redeemed, 0)


class UserRedemptionSerializer(serializers.ModelSerializer):
    title = serializers.CharField(source='redemption_option.title', read_only=True)
    reward_type = serializers.CharField(source='redemption_option.reward_type', read_only=True)
    reward_value = serializers.DecimalField(
        source='redemption_option.reward_value',
        max_digits=10,
        decimal_places=2,
        read_only=True
    )

    class Meta:
        model = UserRedemption
        fields = [
            'id',
            'title',
            'reward_type',
            'reward_value',
            'reward_code',
            'points_used',
            'is_used',
            'expires_at',
            'created_at',
        ]
        read_only_fields = fields


class SwapSerializer(serializers.ModelSerializer):
    requester_email = serializers.EmailField(source='requester.email', read_only=True)
    target_user_email = serializers.EmailField(source='target_user.email', read_only=True)
    requester_item_title = serializers.CharField(source='requester_item.title', read_only=True)
    target_item_title = serializers.CharField(source='target_item.title', read_only=True)

    class Meta:
        model = Swap
        fields = [
            'id',
            'requester',
            'requester_email',
            'requester_item',
            'requester_item_title',
            'target_user',
            'target_user_email',
            'target_item',
            'target_item_title',
            'status',
            'message',
            'created_at',
            'updated_at',
            'completed_at',
        ]
        read_only_fields = fields
