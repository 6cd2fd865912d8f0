"""
Points ledger.

The PointsTransaction log is the source of truth; ``User.points_balance`` is a
cache that is only written here, in the same transaction and under the same
row lock as the ledger entry that justifies it. Any path that changes a
balance (purchases, swaps, redemptions, admin awards) goes through
``award_points`` or ``deduct_points``.
"""

import logging
from dataclasses import dataclass

from django.contrib.auth import get_user_model
from django.db import DEFAULT_DB_ALIAS, IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from ..conf import exchange_setting
from ..exceptions import (
    DuplicateTransaction,
    InsufficientBalance,
    InvalidAction,
    InvalidAmount,
    UserNotFound,
    ValidationError,
)
from ..locking import lock_user, retry_on_lock_failure
from ..models import PointsTransaction

logger = logging.getLogger(__name__)

User = get_user_model()

ADMIN_AWARD_REFERENCE = 'admin_award'


@dataclass(frozen=True)
class LedgerResult:
    new_balance: int
    transaction_id: int
    amount: int


def _check_amount(amount):
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f'Points amount must be a positive integer, got {amount!r}.')


def _check_not_recorded(user_id, transaction_type, reference_id, reference_type, using):
    if reference_id is None:
        return
    exists = PointsTransaction.objects.using(using).filter(
        user_id=user_id,
        reference_id=reference_id,
        reference_type=reference_type or '',
        transaction_type=transaction_type,
    ).exists()
    if exists:
        raise DuplicateTransaction(
            f'{transaction_type} points for {reference_type} {reference_id} '
            f'were already recorded for user {user_id}.'
        )


def _apply(user_id, delta, transaction_type, description, reference_id, reference_type, using):
    """
    Write one ledger entry and move the cached balance by delta.

    Runs inside its own atomic block (a savepoint when nested) while holding
    the user's row lock, so the balance check and the write cannot interleave
    with another deduction.
    """
    if reference_id is not None and not reference_type:
        raise ValidationError('A reference id requires a reference type.')

    with transaction.atomic(using=using):
        user = lock_user(user_id, using=using)

        _check_not_recorded(user_id, transaction_type, reference_id, reference_type, using)

        new_balance = user.points_balance + delta
        if new_balance < 0:
            raise InsufficientBalance(
                f'Insufficient points. You need {-delta} points but only have {user.points_balance}.',
                required=-delta,
                available=user.points_balance,
            )

        try:
            # Savepoint so a lost race on the unique constraint leaves the
            # enclosing transaction usable.
            with transaction.atomic(using=using):
                entry = PointsTransaction.objects.using(using).create(
                    user_id=user_id,
                    amount=delta,
                    transaction_type=transaction_type,
                    description=description[:255],
                    reference_id=reference_id,
                    reference_type=reference_type or '',
                    balance_after=new_balance,
                )
        except IntegrityError:
            raise DuplicateTransaction(
                f'{transaction_type} points for {reference_type} {reference_id} '
                f'were already recorded for user {user_id}.'
            )

        User.objects.using(using).filter(pk=user_id).update(points_balance=new_balance)
        user.points_balance = new_balance

    logger.info(
        f"Ledger entry {entry.id}: user={user_id}, amount={delta:+d}, "
        f"type={transaction_type}, ref={reference_type}:{reference_id}, balance={new_balance}"
    )
    return LedgerResult(new_balance=new_balance, transaction_id=entry.id, amount=delta)


@retry_on_lock_failure
def award_points(user_id, amount, transaction_type, description,
                 reference_id=None, reference_type=None, using=DEFAULT_DB_ALIAS):
    """
    Credit points to a user.

    Args:
        user_id: User receiving the points
        amount: Positive number of points
        transaction_type: One of earned, bonus, refund
        description: Human-readable reason stored on the ledger entry
        reference_id: Optional id of the record that caused the award
        reference_type: Kind of that record (required with reference_id)
        using: Database alias

    Returns:
        LedgerResult: new balance and ledger entry id

    Raises:
        InvalidAmount: If amount is not a positive integer
        ValidationError: If transaction_type is not a credit type
        DuplicateTransaction: If this (reference, type) was already awarded
        UserNotFound: If the user does not exist
    """
    _check_amount(amount)
    if transaction_type not in PointsTransaction.CREDIT_TYPES:
        raise ValidationError(
            f'Cannot award points with transaction type {transaction_type!r}.'
        )
    return _apply(user_id, amount, transaction_type, description,
                  reference_id, reference_type, using)


@retry_on_lock_failure
def deduct_points(user_id, amount, description,
                  reference_id=None, reference_type=None, using=DEFAULT_DB_ALIAS):
    """
    Debit points from a user as a 'redeemed' ledger entry.

    Raises:
        InvalidAmount: If amount is not a positive integer
        InsufficientBalance: If the locked balance is lower than amount
        DuplicateTransaction: If this reference was already debited
        UserNotFound: If the user does not exist
    """
    _check_amount(amount)
    return _apply(user_id, -amount, PointsTransaction.TYPE_REDEEMED, description,
                  reference_id, reference_type, using)


def get_balance(user_id, using=DEFAULT_DB_ALIAS):
    """Return the cached points balance of a user."""
    try:
        return User.objects.using(using).values_list('points_balance', flat=True).get(pk=user_id)
    except User.DoesNotExist:
        raise UserNotFound(f'User {user_id} does not exist.')


def get_history(user_id, limit=20, using=DEFAULT_DB_ALIAS):
    """Most recent ledger entries of a user, newest first."""
    return list(
        PointsTransaction.objects.using(using)
        .filter(user_id=user_id)
        .order_by('-created_at', '-id')[:limit]
    )


def ledger_sum(user_id, using=DEFAULT_DB_ALIAS):
    """Sum of all ledger amounts for a user (0 when the user has no entries)."""
    total = PointsTransaction.objects.using(using).filter(
        user_id=user_id
    ).aggregate(total=Sum('amount'))['total']
    return total or 0


def reconcile_balance(user_id, fix=False, using=DEFAULT_DB_ALIAS):
    """
    Compare a user's cached balance with the ledger sum.

    Args:
        user_id: User to check
        fix: Rewrite the cached balance from the ledger when they differ

    Returns:
        tuple: (cached balance, ledger sum)
    """
    with transaction.atomic(using=using):
        user = lock_user(user_id, using=using)
        expected = ledger_sum(user_id, using=using)
        cached = user.points_balance
        if cached != expected:
            logger.warning(
                f"Balance drift for user {user_id}: cached={cached}, ledger={expected}"
            )
            if fix:
                User.objects.using(using).filter(pk=user_id).update(points_balance=expected)
                logger.info(f"Balance for user {user_id} reset to ledger sum {expected}")
    return cached, expected


def _period_reference(user_id, period, now):
    """Server-side reference id for a rule that may be earned once per period."""
    today = timezone.localdate(now)
    if period == 'once':
        return user_id
    if period == 'daily':
        return today.toordinal()
    if period == 'weekly':
        year, week, _ = today.isocalendar()
        return year * 100 + week
    raise ValueError(f'Unknown earning period: {period!r}')


def award_for_action(user_id, action, reference_id=None, reference_type=None,
                     now=None, using=DEFAULT_DB_ALIAS):
    """
    Award the points configured for a user action (upload, referral, ...).

    Every award is keyed on a reference so it can be earned at most once per
    reference. Rules with a ``reference_type`` need the caller to name the
    record (for example the review id); rules with a ``period`` derive the
    reference from the user or the current day or ISO week, and refuse a
    caller-supplied one.

    Raises:
        InvalidAction: If the action has no earning rule
        ValidationError: If the reference is missing, of the wrong type or
            supplied for a periodic rule
        DuplicateTransaction: If already earned for this reference
    """
    rules = exchange_setting('EARNING_RULES')
    rule = rules.get(action)
    if rule is None:
        raise InvalidAction(f'Invalid action for earning points: {action!r}.')

    period = rule.get('period')
    if period is not None:
        if reference_id is not None or reference_type:
            raise ValidationError(f'{action} points take no reference; it is assigned automatically.')
        reference_id = _period_reference(user_id, period, now)
        reference_type = action
    else:
        expected_type = rule.get('reference_type')
        if reference_id is None:
            raise ValidationError(f'{action} points require a reference_id.')
        if not reference_type:
            reference_type = expected_type
        if not reference_type or (expected_type and reference_type != expected_type):
            raise ValidationError(f'{action} points must reference a {expected_type}.')

    return award_points(
        user_id,
        rule['points'],
        PointsTransaction.TYPE_EARNED,
        rule['description'],
        reference_id=reference_id,
        reference_type=reference_type,
        using=using,
    )


def admin_award(user_id, amount, description=None, using=DEFAULT_DB_ALIAS):
    """Staff-issued bonus; not deduplicated because it carries no reference id."""
    return award_points(
        user_id,
        amount,
        PointsTransaction.TYPE_BONUS,
        description or f'Admin awarded {amount} bonus points',
        reference_type=ADMIN_AWARD_REFERENCE,
        using=using,
    )
