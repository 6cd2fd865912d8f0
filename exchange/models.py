"""
Data model for the ReWear exchange: users with a points balance, listed
items, purchase receipts, swaps, the points ledger and redemptions.
"""

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import validate_reference_pair


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address
    - points_balance: Cached sum of the user's points ledger
    - created_at: Account creation timestamp
    - updated_at: Last update timestamp

    points_balance is only ever written by the ledger engine
    (exchange.services.ledger); the PointsTransaction log is the source of truth.
    """

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    points_balance = models.IntegerField(
        _('points balance'),
        default=0,
        validators=[MinValueValidator(0, message=_('Points balance cannot be negative.'))],
        help_text=_('Cached sum of the points ledger. Never edit directly.')
    )

    created_at = models.DateTimeField(
        _('created at'),
        auto_now_add=True,
        help_text=_('Timestamp when the account was created.')
    )

    updated_at = models.DateTimeField(
        _('updated at'),
        auto_now=True,
        help_text=_('Timestamp when the account was last updated.')
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(points_balance__gte=0),
                name='user_points_balance_non_negative',
            ),
        ]

    def __str__(self):
        """Return email as string representation."""
        return self.email or self.username

    def save(self, *args, **kwargs):
        """Normalize email to lowercase before saving."""
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class Item(models.Model):
    """
    Listed item owned by exactly one user.

    Fields:
    - owner: Current owner (reassigned only by a completed purchase or swap)
    - title: Item title
    - description: Detailed description
    - price: Listing price (must be > 0); points cost is ceil(price)
    - status: Lifecycle status (active, sold, withdrawn)
    """

    STATUS_ACTIVE = 'active'
    STATUS_SOLD = 'sold'
    STATUS_WITHDRAWN = 'withdrawn'

    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SOLD, 'Sold'),
        (STATUS_WITHDRAWN, 'Withdrawn'),
    ]

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='items',
        help_text=_('User currently owning this item')
    )

    title = models.CharField(
        _('title'),
        max_length=200,
        help_text=_('Title of the item')
    )

    description = models.TextField(
        _('description'),
        blank=True,
        default='',
        help_text=_('Detailed description of the item')
    )

    price = models.DecimalField(
        _('price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Listing price (must be greater than 0)')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        help_text=_('Lifecycle status of the listing')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('item')
        verbose_name_plural = _('items')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner'], name='item_owner_idx'),
            models.Index(fields=['status'], name='item_status_idx'),
        ]

    def __str__(self):
        """Return title as string representation."""
        return self.title

    def clean(self):
        """
        Validate model fields.

        Raises:
            ValidationError: If title is blank or price is not positive
        """
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({
                'title': _('Title cannot be empty.')
            })

        if self.price is not None and self.price <= 0:
            raise ValidationError({
                'price': _('Price must be greater than 0.')
            })

    def save(self, *args, **kwargs):
        """Run full validation before saving."""
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available(self):
        """
        Check if item can be purchased or swapped.

        Returns:
            bool: True if status is active
        """
        return self.status == self.STATUS_ACTIVE


class Order(models.Model):
    """
    Immutable receipt for a completed points purchase.
    """

    PAYMENT_POINTS = 'points'
    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_POINTS, 'Points'),
    ]

    STATUS_PAID = 'paid'
    STATUS_CHOICES = [
        (STATUS_PAID, 'Paid'),
    ]

    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='purchases',
        help_text=_('User who bought the item')
    )

    seller = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='sales',
        help_text=_('Owner of the item at the time of sale')
    )

    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='orders',
        help_text=_('Item that changed hands')
    )

    total_amount = models.DecimalField(
        _('total amount'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Item price at the time of purchase')
    )

    points_used = models.PositiveIntegerField(
        _('points used'),
        help_text=_('Points deducted from the buyer')
    )

    payment_method = models.CharField(
        _('payment method'),
        max_length=20,
        choices=PAYMENT_METHOD_CHOICES,
        default=PAYMENT_POINTS
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PAID
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('order')
        verbose_name_plural = _('orders')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer'], name='order_buyer_idx'),
            models.Index(fields=['seller'], name='order_seller_idx'),
        ]

    def __str__(self):
        return f'ORD-{self.pk:06d}' if self.pk else 'ORD-unsaved'

    def save(self, *args, **kwargs):
        """Orders are receipts: only the initial insert is allowed."""
        if not self._state.adding:
            raise ValidationError(_('Orders are immutable once written.'))
        super().save(*args, **kwargs)


class Swap(models.Model):
    """
    Proposed bilateral exchange of two items between two users.

    State machine:
    - pending -> accepted (target accepts) or rejected (target rejects)
      or cancelled (requester withdraws)
    - accepted -> completed (ownership transfer succeeded)
    - accepted -> pending (ownership transfer failed, explicit rollback)
    - rejected, completed, cancelled are terminal
    """

    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_REJECTED = 'rejected'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_ACCEPTED, STATUS_REJECTED, STATUS_CANCELLED],
        STATUS_ACCEPTED: [STATUS_COMPLETED, STATUS_PENDING],
        STATUS_REJECTED: [],
        STATUS_COMPLETED: [],
        STATUS_CANCELLED: [],
    }

    requester = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='swaps_requested',
        help_text=_('User proposing the swap')
    )

    requester_item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='swaps_offered',
        help_text=_("Requester's item offered in exchange")
    )

    target_user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='swaps_received',
        help_text=_('Owner of the requested item')
    )

    target_item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='swaps_requested',
        help_text=_("Target user's item being asked for")
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING
    )

    message = models.TextField(_('message'), blank=True, default='')

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)

    class Meta:
        verbose_name = _('swap')
        verbose_name_plural = _('swaps')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['requester'], name='swap_requester_idx'),
            models.Index(fields=['target_user'], name='swap_target_user_idx'),
            models.Index(fields=['status'], name='swap_status_idx'),
            models.Index(fields=['created_at'], name='swap_created_at_idx'),
        ]

    def __str__(self):
        return f'Swap {self.pk}: {self.requester_item_id} <-> {self.target_item_id} ({self.status})'

    def can_transition_to(self, new_status):
        """
        Check if transition to new status is valid.

        Args:
            new_status: Target status

        Returns:
            bool: True if the state machine allows the move
        """
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def transition_to(self, new_status):
        """
        Move to new_status, enforcing the state machine.

        Raises:
            ValidationError: If the transition is not allowed
        """
        if not self.can_transition_to(new_status):
            raise ValidationError(
                f'Invalid swap status transition from {self.status} to {new_status}.'
            )
        self.status = new_status
        if new_status == self.STATUS_COMPLETED:
            self.completed_at = timezone.now()


class PointsTransaction(models.Model):
    """
    One immutable entry in a user's points ledger.

    Credits (earned, bonus, refund) carry a positive amount, redemptions a
    negative one. A (reference_id, reference_type, transaction_type) triple is
    recorded at most once per user.
    """

    TYPE_EARNED = 'earned'
    TYPE_REDEEMED = 'redeemed'
    TYPE_BONUS = 'bonus'
    TYPE_REFUND = 'refund'

    TRANSACTION_TYPE_CHOICES = [
        (TYPE_EARNED, 'Earned'),
        (TYPE_REDEEMED, 'Redeemed'),
        (TYPE_BONUS, 'Bonus'),
        (TYPE_REFUND, 'Refund'),
    ]

    CREDIT_TYPES = (TYPE_EARNED, TYPE_BONUS, TYPE_REFUND)

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='points_transactions'
    )

    amount = models.IntegerField(
        _('amount'),
        help_text=_('Signed points amount (negative for redemptions)')
    )

    transaction_type = models.CharField(
        _('transaction type'),
        max_length=20,
        choices=TRANSACTION_TYPE_CHOICES
    )

    description = models.CharField(_('description'), max_length=255)

    reference_id = models.PositiveBigIntegerField(
        _('reference id'),
        null=True,
        blank=True
    )

    reference_type = models.CharField(
        _('reference type'),
        max_length=50,
        blank=True,
        default=''
    )

    balance_after = models.IntegerField(
        _('balance after'),
        help_text=_('User balance once this entry was applied')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('points transaction')
        verbose_name_plural = _('points transactions')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user'], name='points_tx_user_idx'),
            models.Index(fields=['transaction_type'], name='points_tx_type_idx'),
            models.Index(fields=['created_at'], name='points_tx_created_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'reference_id', 'reference_type', 'transaction_type'],
                condition=models.Q(reference_id__isnull=False),
                name='unique_points_reference_per_user',
            ),
            models.CheckConstraint(
                condition=~models.Q(amount=0),
                name='points_amount_non_zero',
            ),
        ]

    def __str__(self):
        return f'{self.user_id}: {self.amount:+d} ({self.transaction_type})'

    def clean(self):
        super().clean()
        validate_reference_pair(self.reference_id, self.reference_type)

    def save(self, *args, **kwargs):
        """Ledger entries are append-only: updates are refused."""
        if not self._state.adding:
            raise ValidationError(_('Points transactions are immutable once written.'))
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(_('Points transactions cannot be deleted.'))


class RedemptionOption(models.Model):
    """
    Catalog entry convertible into a reward code at a fixed points cost.
    """

    REWARD_DISCOUNT = 'discount'
    REWARD_FREE_SHIPPING = 'free_shipping'
    REWARD_VOUCHER = 'voucher'
    REWARD_PHYSICAL = 'physical_reward'

    REWARD_TYPE_CHOICES = [
        (REWARD_DISCOUNT, 'Discount'),
        (REWARD_FREE_SHIPPING, 'Free Shipping'),
        (REWARD_VOUCHER, 'Voucher'),
        (REWARD_PHYSICAL, 'Physical Reward'),
    ]

    title = models.CharField(_('title'), max_length=255)
    description = models.TextField(_('description'), blank=True, default='')

    points_required = models.PositiveIntegerField(
        _('points required'),
        validators=[MinValueValidator(1)]
    )

    reward_type = models.CharField(
        _('reward type'),
        max_length=50,
        choices=REWARD_TYPE_CHOICES
    )

    reward_value = models.DecimalField(
        _('reward value'),
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True
    )

    reward_code = models.CharField(
        _('reward code template'),
        max_length=100,
        blank=True,
        default=''
    )

    max_redemptions_per_user = models.PositiveIntegerField(
        _('max redemptions per user'),
        null=True,
        blank=True
    )

    total_available = models.PositiveIntegerField(
        _('total available'),
        null=True,
        blank=True
    )

    total_redeemed = models.PositiveIntegerField(_('total redeemed'), default=0)

    is_active = models.BooleanField(_('is active'), default=True)
    expires_at = models.DateTimeField(_('expires at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('redemption option')
        verbose_name_plural = _('redemption options')
        ordering = ['points_required']
        indexes = [
            models.Index(fields=['is_active'], name='redemption_opt_active_idx'),
            models.Index(fields=['points_required'], name='redemption_opt_points_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(total_available__isnull=True)
                    | models.Q(total_redeemed__lte=models.F('total_available'))
                ),
                name='redemption_total_within_cap',
            ),
        ]

    def __str__(self):
        return self.title

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.expires_at is not None and self.expires_at <= now

    def is_sold_out(self):
        return self.total_available is not None and self.total_redeemed >= self.total_available


class UserRedemption(models.Model):
    """
    Reward code issued to a user in exchange for points.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='redemptions'
    )

    redemption_option = models.ForeignKey(
        RedemptionOption,
        on_delete=models.CASCADE,
        related_name='redemptions'
    )

    points_used = models.PositiveIntegerField(_('points used'))

    reward_code = models.CharField(_('reward code'), max_length=100, unique=True)

    is_used = models.BooleanField(_('is used'), default=False)
    used_at = models.DateTimeField(_('used at'), null=True, blank=True)
    expires_at = models.DateTimeField(_('expires at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('user redemption')
        verbose_name_plural = _('user redemptions')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user'], name='user_redemption_user_idx'),
            models.Index(fields=['is_used'], name='user_redemption_used_idx'),
        ]

    def __str__(self):
        return self.reward_code
