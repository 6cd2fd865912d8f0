"""
Django admin configuration for the exchange models.

Balances and ledger rows are read-only here: points move only through the
ledger service, and the verify_ledger command repairs drift.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import (
    Item,
    Order,
    PointsTransaction,
    RedemptionOption,
    Swap,
    User,
    UserRedemption,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with the cached points balance.
    """

    list_display = [
        'email',
        'username',
        'points_balance',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
    ]

    ordering = ['-created_at']

    readonly_fields = ['points_balance', 'created_at', 'updated_at', 'last_login', 'date_joined']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
            )
        }),
        (_('Points'), {
            'fields': ('points_balance',)
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'username', 'password1', 'password2'),
        }),
    )


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['title', 'owner', 'price', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['title', 'description', 'owner__email']
    # Ownership only changes through purchases and swaps
    readonly_fields = ['owner', 'created_at', 'updated_at']
    ordering = ['-created_at']

    def get_readonly_fields(self, request, obj=None):
        if obj is None:
            return ['created_at', 'updated_at']
        return self.readonly_fields


class ImmutableAdminMixin:
    """Admin for write-once records: viewable, never edited or deleted."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(ImmutableAdminMixin, admin.ModelAdmin):
    list_display = ['__str__', 'buyer', 'seller', 'item', 'points_used', 'status', 'created_at']
    list_filter = ['status', 'payment_method', 'created_at']
    search_fields = ['buyer__email', 'seller__email', 'item__title']
    ordering = ['-created_at']


@admin.register(Swap)
class SwapAdmin(admin.ModelAdmin):
    list_display = ['id', 'requester', 'requester_item', 'target_user', 'target_item', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['requester__email', 'target_user__email', 'requester_item__title', 'target_item__title']
    readonly_fields = [
        'requester', 'requester_item', 'target_user', 'target_item',
        'status', 'created_at', 'updated_at', 'completed_at',
    ]
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False


@admin.register(PointsTransaction)
class PointsTransactionAdmin(ImmutableAdminMixin, admin.ModelAdmin):
    list_display = ['user', 'amount', 'transaction_type', 'reference_type', 'reference_id', 'balance_after', 'created_at']
    list_filter = ['transaction_type', 'reference_type', 'created_at']
    search_fields = ['user__email', 'description']
    ordering = ['-created_at', '-id']


@admin.register(RedemptionOption)
class RedemptionOptionAdmin(admin.ModelAdmin):
    list_display = ['title', 'reward_type', 'points_required', 'total_redeemed', 'total_available', 'is_active', 'expires_at']
    list_filter = ['reward_type', 'is_active']
    search_fields = ['title', 'description']
    readonly_fields = ['total_redeemed', 'created_at', 'updated_at']
    ordering = ['points_required']

    fieldsets = (
        (None, {
            'fields': ('title', 'description', 'reward_type', 'reward_value', 'reward_code')
        }),
        (_('Cost & Limits'), {
            'fields': ('points_required', 'max_redemptions_per_user', 'total_available', 'total_redeemed')
        }),
        (_('Availability'), {
            'fields': ('is_active', 'expires_at', 'created_at', 'updated_at')
        }),
    )


@admin.register(UserRedemption)
class UserRedemptionAdmin(ImmutableAdminMixin, admin.ModelAdmin):
    list_display = ['reward_code', 'user', 'redemption_option', 'points_used', 'is_used', 'expires_at', 'created_at']
    list_filter = ['is_used', 'created_at']
    search_fields = ['reward_code', 'user__email', 'redemption_option__title']
    ordering = ['-created_at']
