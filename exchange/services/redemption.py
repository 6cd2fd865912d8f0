"""
Redemption engine: converts points into reward codes.

``redeem`` locks the option row before the user's balance row (the same
canonical order as purchases and swaps), so two users racing for the last
unit of a capped reward are serialized on the option row and exactly one of
them gets it.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.db import DEFAULT_DB_ALIAS, IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.crypto import get_random_string

from ..conf import exchange_setting
from ..exceptions import (
    InsufficientPoints,
    LimitReached,
    NotAuthorized,
    OptionExpired,
    OptionInactive,
    RedemptionAlreadyUsed,
    RedemptionExpired,
    RedemptionNotFound,
    RewardCodeExhausted,
    SoldOut,
)
from ..locking import acquire_locks, retry_on_lock_failure
from ..models import RedemptionOption, UserRedemption
from . import ledger

logger = logging.getLogger(__name__)

REDEMPTION_REFERENCE = 'redemption'

REWARD_CODE_PREFIXES = {
    RedemptionOption.REWARD_DISCOUNT: 'DISC',
    RedemptionOption.REWARD_FREE_SHIPPING: 'SHIP',
    RedemptionOption.REWARD_VOUCHER: 'VOUCH',
    RedemptionOption.REWARD_PHYSICAL: 'GIFT',
}
DEFAULT_REWARD_PREFIX = 'REWARD'
CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'


@dataclass(frozen=True)
class RedemptionResult:
    redemption_id: int
    reward_code: str
    expires_at: datetime
    points_used: int
    remaining_points: int


def _base36(number):
    digits = []
    while True:
        number, remainder = divmod(number, 36)
        digits.append(CODE_ALPHABET[26 + remainder] if remainder < 10 else CODE_ALPHABET[remainder - 10])
        if number == 0:
            break
    return ''.join(reversed(digits))


def generate_reward_code(reward_type):
    """
    Build a candidate reward code: type prefix + 6 random characters +
    base-36 millisecond timestamp. Uniqueness is not guaranteed here.
    """
    prefix = REWARD_CODE_PREFIXES.get(reward_type, DEFAULT_REWARD_PREFIX)
    random_part = get_random_string(6, allowed_chars=CODE_ALPHABET)
    timestamp = _base36(int(time.time() * 1000))
    return f'{prefix}{random_part}{timestamp}'


def _insert_redemption(option, user_id, expires_at, using):
    """
    Write the UserRedemption under a fresh reward code.

    The unique index on reward_code is the uniqueness check: each attempt
    inserts inside a savepoint, and a collision (with an existing code or one
    committed concurrently for another option) discards only that savepoint
    and retries with a new code.
    """
    attempts = int(exchange_setting('REWARD_CODE_MAX_ATTEMPTS'))
    for attempt in range(1, attempts + 1):
        code = generate_reward_code(option.reward_type)
        try:
            with transaction.atomic(using=using):
                return UserRedemption.objects.using(using).create(
                    user_id=user_id,
                    redemption_option_id=option.pk,
                    points_used=option.points_required,
                    reward_code=code,
                    expires_at=expires_at,
                )
        except IntegrityError:
            logger.warning(f"Reward code collision on attempt {attempt}: {code}")
    raise RewardCodeExhausted(f'No unique reward code after {attempts} attempts.')


def list_available(now=None, using=DEFAULT_DB_ALIAS):
    """
    Options a user could redeem right now: active, not expired and not sold out.

    Returns:
        QuerySet: ordered by points_required ascending
    """
    now = now or timezone.now()
    return RedemptionOption.objects.using(using).filter(
        Q(expires_at__isnull=True) | Q(expires_at__gt=now),
        Q(total_available__isnull=True) | Q(total_redeemed__lt=F('total_available')),
        is_active=True,
    ).order_by('points_required', 'id')


@retry_on_lock_failure
def redeem(user_id, option_id, using=DEFAULT_DB_ALIAS):
    """
    Exchange points for a reward code.

    Steps (one transaction; option row locked before the user row):
    1. Option must exist, be active and unexpired
    2. User balance must cover points_required
    3. The availability cap must not be reached
    4. The user's per-option limit must not be reached
    5. A UserRedemption expiring after REDEMPTION_EXPIRY_DAYS is written
    6. Its reward code is regenerated while it collides with an existing one
    7. points_required is deducted, referenced to the redemption
    8. total_redeemed is incremented

    Returns:
        RedemptionResult: redemption id, code, expiry and remaining balance

    Raises:
        OptionNotFound, OptionInactive, OptionExpired, InsufficientPoints,
        SoldOut, LimitReached, RewardCodeExhausted, UserNotFound
    """
    now = timezone.now()

    with transaction.atomic(using=using):
        locked = acquire_locks(using=using, option_id=option_id, user_ids=[user_id])
        option = locked.option
        user = locked.users[user_id]

        if not option.is_active:
            raise OptionInactive(f'Redemption option {option_id} is not active.')
        if option.is_expired(now):
            raise OptionExpired(f'Redemption option {option_id} expired at {option.expires_at}.')

        if user.points_balance < option.points_required:
            raise InsufficientPoints(
                f'Insufficient points. You need {option.points_required} points '
                f'but only have {user.points_balance}',
                required=option.points_required,
                available=user.points_balance,
            )

        if option.is_sold_out():
            logger.warning(f"Redemption option {option_id} sold out; user {user_id} rejected")
            raise SoldOut()

        if option.max_redemptions_per_user is not None:
            already = UserRedemption.objects.using(using).filter(
                user_id=user_id,
                redemption_option_id=option_id,
            ).count()
            if already >= option.max_redemptions_per_user:
                raise LimitReached()

        expires_at = now + timedelta(days=int(exchange_setting('REDEMPTION_EXPIRY_DAYS')))
        redemption = _insert_redemption(option, user_id, expires_at, using)
        reward_code = redemption.reward_code

        debit = ledger.deduct_points(
            user_id,
            option.points_required,
            f'Redeemed: {option.title}',
            reference_id=redemption.pk,
            reference_type=REDEMPTION_REFERENCE,
            using=using,
        )

        RedemptionOption.objects.using(using).filter(pk=option_id).update(
            total_redeemed=F('total_redeemed') + 1,
            updated_at=now,
        )

    logger.info(
        f"Redemption {redemption.pk}: user {user_id} redeemed option {option_id} "
        f"for {option.points_required} points, code={reward_code}"
    )

    return RedemptionResult(
        redemption_id=redemption.pk,
        reward_code=reward_code,
        expires_at=expires_at,
        points_used=option.points_required,
        remaining_points=debit.new_balance,
    )


def active_redemptions(user_id, now=None, using=DEFAULT_DB_ALIAS):
    """Unused, unexpired reward codes of a user, newest first."""
    now = now or timezone.now()
    return UserRedemption.objects.using(using).select_related('redemption_option').filter(
        Q(expires_at__isnull=True) | Q(expires_at__gt=now),
        user_id=user_id,
        is_used=False,
    ).order_by('-created_at')


@retry_on_lock_failure
def mark_redemption_used(redemption_id, user_id, using=DEFAULT_DB_ALIAS):
    """
    Consume a reward code once.

    Raises:
        RedemptionNotFound, NotAuthorized, RedemptionAlreadyUsed, RedemptionExpired
    """
    now = timezone.now()
    with transaction.atomic(using=using):
        try:
            redemption = UserRedemption.objects.using(using).select_for_update().get(pk=redemption_id)
        except UserRedemption.DoesNotExist:
            raise RedemptionNotFound(f'Redemption {redemption_id} does not exist.')

        if redemption.user_id != user_id:
            raise NotAuthorized('This reward code belongs to another user.')
        if redemption.is_used:
            raise RedemptionAlreadyUsed()
        if redemption.expires_at is not None and redemption.expires_at <= now:
            raise RedemptionExpired(f'Reward code {redemption.reward_code} expired at {redemption.expires_at}.')

        redemption.is_used = True
        redemption.used_at = now
        redemption.save(using=using, update_fields=['is_used', 'used_at'])

    logger.info(f"Redemption {redemption_id} used by user {user_id}")
    return redemption
