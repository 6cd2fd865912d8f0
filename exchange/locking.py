"""
Row locking shared by the purchase, swap and redemption flows.

All three flows acquire pessimistic row locks through ``acquire_locks`` so
that a single global order is used everywhere:

    1. swap row
    2. item rows, then the redemption option row (ascending id)
    3. user balance rows (ascending id)

Two transactions that touch overlapping rows therefore always wait on each
other in the same order and cannot deadlock against each other.
"""

import functools
import logging
import time
from collections import namedtuple

from django.db import DEFAULT_DB_ALIAS, OperationalError, transaction
from django.contrib.auth import get_user_model

from .conf import exchange_setting
from .exceptions import ItemNotFound, OptionNotFound, SwapNotFound, UserNotFound
from .models import Item, RedemptionOption, Swap

logger = logging.getLogger(__name__)

User = get_user_model()

LockedRows = namedtuple('LockedRows', ['swap', 'items', 'option', 'users'])


def acquire_locks(using=DEFAULT_DB_ALIAS, swap_id=None, item_ids=(), option_id=None, user_ids=()):
    """
    Lock every row a unit of work needs, in the canonical order.

    Must be called inside ``transaction.atomic(using=using)``. Duplicate and
    None ids are ignored.

    Args:
        using: Database alias of the open transaction
        swap_id: Swap row to lock first
        item_ids: Item rows to lock
        option_id: Redemption option row to lock
        user_ids: User rows whose balances may change

    Returns:
        LockedRows: swap (or None), items by id, option (or None), users by id

    Raises:
        SwapNotFound, ItemNotFound, OptionNotFound, UserNotFound: If a row is missing
    """
    conn = transaction.get_connection(using)
    if not conn.in_atomic_block:
        raise RuntimeError('acquire_locks() must run inside transaction.atomic().')

    swap = None
    if swap_id is not None:
        try:
            swap = Swap.objects.using(using).select_for_update().get(pk=swap_id)
        except Swap.DoesNotExist:
            raise SwapNotFound(f'Swap {swap_id} does not exist.')

    items = {}
    for item_id in sorted({i for i in item_ids if i is not None}):
        try:
            items[item_id] = Item.objects.using(using).select_for_update().get(pk=item_id)
        except Item.DoesNotExist:
            raise ItemNotFound(f'Item {item_id} does not exist.')

    option = None
    if option_id is not None:
        try:
            option = RedemptionOption.objects.using(using).select_for_update().get(pk=option_id)
        except RedemptionOption.DoesNotExist:
            raise OptionNotFound(f'Redemption option {option_id} does not exist.')

    users = {}
    for user_id in sorted({u for u in user_ids if u is not None}):
        try:
            users[user_id] = User.objects.using(using).select_for_update().get(pk=user_id)
        except User.DoesNotExist:
            raise UserNotFound(f'User {user_id} does not exist.')

    return LockedRows(swap=swap, items=items, option=option, users=users)


def lock_user(user_id, using=DEFAULT_DB_ALIAS):
    """Lock a single user balance row (re-locking within a transaction is a no-op)."""
    return acquire_locks(using=using, user_ids=[user_id]).users[user_id]


def retry_on_lock_failure(func):
    """
    Retry a whole unit of work when the database reports a lock failure.

    Deadlocks, lock wait timeouts and dropped connections surface as
    OperationalError. The wrapped function opens its own atomic block, so the
    failed attempt has already been rolled back in full and can be re-run.
    When the caller already holds an outer transaction nothing is retried,
    because the outer transaction is now unusable.

    The database alias is taken from the ``using`` keyword argument.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        using = kwargs.get('using', DEFAULT_DB_ALIAS)
        if transaction.get_connection(using).in_atomic_block:
            return func(*args, **kwargs)

        max_attempts = max(1, int(exchange_setting('LOCK_RETRY_ATTEMPTS')))
        delay = float(exchange_setting('LOCK_RETRY_DELAY'))

        for attempt in range(1, max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except OperationalError as e:
                if attempt == max_attempts:
                    logger.error(
                        f"{func.__name__} failed after {attempt} attempts: {e}",
                        exc_info=True
                    )
                    raise
                logger.warning(
                    f"{func.__name__} hit a lock failure (attempt {attempt}/{max_attempts}), "
                    f"retrying in {delay:.3f}s: {e}"
                )
                time.sleep(delay)
                delay *= 2

    return wrapper
