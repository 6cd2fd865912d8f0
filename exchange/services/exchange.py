"""
Exchange coordinator: direct points purchases and peer-to-peer swaps.

Each operation runs as one database transaction that locks its rows through
``exchange.locking.acquire_locks`` and moves item ownership (catalog) and
points (ledger) together. Secondary bonus awards run in a savepoint inside
the same transaction: when they fail, the primary transfer still commits and
the failure is reported as a PartialSuccess warning, unless the
``STRICT_BONUS`` setting asks for the whole operation to be aborted.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, OperationalError, transaction

from ..catalog import CatalogStore
from ..conf import exchange_setting
from ..exceptions import (
    AmountMismatch,
    DuplicatePending,
    ExchangeError,
    InsufficientBalance,
    InvalidAction,
    InvalidAmount,
    ItemNotFound,
    NotAuthorized,
    NotOwner,
    PartialSuccess,
    SelfSwap,
    SelfTrade,
    SwapNotFound,
    SwapNotPending,
    TransferFailure,
)
from ..locking import acquire_locks, retry_on_lock_failure
from ..models import Item, Order, PointsTransaction, Swap
from . import ledger

logger = logging.getLogger(__name__)

ORDER_REFERENCE = 'order'
SWAP_REFERENCE = 'swap'

ACTION_ACCEPT = 'accept'
ACTION_REJECT = 'reject'
RESOLVE_ACTIONS = (ACTION_ACCEPT, ACTION_REJECT)


@dataclass
class PurchaseResult:
    order_id: int
    item_id: int
    points_used: int
    remaining_points: int
    seller_bonus: int
    warnings: list = field(default_factory=list)


@dataclass
class SwapCreated:
    swap_id: int
    created_at: datetime
    target_user_id: int


@dataclass
class SwapResolution:
    swap_id: int
    status: str
    warnings: list = field(default_factory=list)


def points_required_for(price):
    """Points cost of an item: its price rounded up to a whole point."""
    return math.ceil(Decimal(price))


def seller_bonus_for(price):
    """Bonus credited to the seller of an item, rounded up."""
    rate = Decimal(str(exchange_setting('SELLER_BONUS_RATE')))
    return math.ceil(Decimal(price) * rate)


def _award_secondary_bonus(step, user_id, amount, description, reference_id, reference_type, using):
    """
    Award a bonus that must not undo the primary transfer when it fails.

    Returns:
        PartialSuccess or None: warning describing the failure, if any

    Raises:
        ExchangeError, DatabaseError: Only when STRICT_BONUS is enabled
        OperationalError: Always, so the whole unit is retried
    """
    if amount <= 0:
        return None

    try:
        with transaction.atomic(using=using):
            ledger.award_points(
                user_id,
                amount,
                PointsTransaction.TYPE_EARNED,
                description,
                reference_id=reference_id,
                reference_type=reference_type,
                using=using,
            )
    except OperationalError:
        # Lock failures abort the whole unit so retry_on_lock_failure can re-run it
        raise
    except (ExchangeError, DatabaseError) as e:
        if exchange_setting('STRICT_BONUS'):
            logger.error(
                f"{step} failed for user {user_id} ({reference_type} {reference_id}); "
                f"aborting the whole operation: {e}"
            )
            raise
        logger.error(
            f"{step} failed for user {user_id} ({reference_type} {reference_id}); "
            f"primary transfer kept: {e}",
            exc_info=True
        )
        return PartialSuccess(step, str(e), reference_id, reference_type)

    return None


# ============================================================================
# Direct purchase
# ============================================================================

@retry_on_lock_failure
def purchase_with_points(buyer_id, item_id, points_offered, using=DEFAULT_DB_ALIAS):
    """
    Buy an active item with points.

    Steps (one transaction; item row locked before both user rows):
    1. Item must exist and be active
    2. Buyer must not own the item
    3. points_offered must equal ceil(price)
    4. Buyer balance must cover the price
    5. Ownership moves to the buyer and the item is marked sold
    6. An Order receipt is written
    7. The buyer is debited, referenced to the order
    8. The seller receives a ceil(price * SELLER_BONUS_RATE) bonus

    Args:
        buyer_id: Authenticated buyer
        item_id: Item to buy
        points_offered: Points the buyer agreed to pay
        using: Database alias

    Returns:
        PurchaseResult: order id, remaining buyer balance, credited seller bonus
        and any PartialSuccess warnings

    Raises:
        ItemNotFound, SelfTrade, InvalidAmount, AmountMismatch,
        InsufficientBalance, TransferFailure
    """
    catalog = CatalogStore(using)

    # Rules that need no lock are checked before any lock is taken.
    item = catalog.get_item(item_id)
    seller_id = item.owner_id
    if seller_id == buyer_id:
        raise SelfTrade()

    if isinstance(points_offered, bool) or not isinstance(points_offered, int) or points_offered <= 0:
        raise InvalidAmount('Invalid points amount.')

    required = points_required_for(item.price)
    if points_offered != required:
        raise AmountMismatch(
            f'Points mismatch. Required: {required}, Provided: {points_offered}',
            required=required,
        )

    warnings = []
    with transaction.atomic(using=using):
        locked = acquire_locks(using=using, item_ids=[item_id], user_ids=[buyer_id, seller_id])
        item = locked.items[item_id]

        if not item.is_available():
            raise ItemNotFound(f'Item {item_id} is no longer available.')
        if item.owner_id == buyer_id:
            raise SelfTrade()
        if item.owner_id != seller_id:
            raise TransferFailure(f'Item {item_id} changed owner while the purchase was in progress.')

        required = points_required_for(item.price)
        if points_offered != required:
            raise AmountMismatch(
                f'Points mismatch. Required: {required}, Provided: {points_offered}',
                required=required,
            )

        buyer = locked.users[buyer_id]
        if buyer.points_balance < required:
            logger.warning(
                f"Purchase rejected for insufficient points. Buyer: {buyer_id}, "
                f"Item: {item_id}, Required: {required}, Balance: {buyer.points_balance}"
            )
            raise InsufficientBalance(
                f'Insufficient points. You need {required} points but only have {buyer.points_balance}',
                required=required,
                available=buyer.points_balance,
            )

        catalog.set_owner(item, buyer_id)
        catalog.set_status(item, Item.STATUS_SOLD)

        order = Order.objects.using(using).create(
            buyer_id=buyer_id,
            seller_id=seller_id,
            item_id=item.pk,
            total_amount=item.price,
            points_used=required,
            payment_method=Order.PAYMENT_POINTS,
            status=Order.STATUS_PAID,
        )

        debit = ledger.deduct_points(
            buyer_id,
            required,
            f'Purchased: {item.title}',
            reference_id=order.pk,
            reference_type=ORDER_REFERENCE,
            using=using,
        )

        seller_bonus = seller_bonus_for(item.price)
        warning = _award_secondary_bonus(
            'seller_bonus',
            seller_id,
            seller_bonus,
            f'Sale bonus: {item.title}',
            order.pk,
            ORDER_REFERENCE,
            using,
        )
        if warning is not None:
            warnings.append(warning)
            seller_bonus = 0

    logger.info(
        f"Purchase completed. Order: {order.pk}, Item: {item_id}, "
        f"Buyer: {buyer_id}, Seller: {seller_id}, Points: {required}, "
        f"Seller bonus: {seller_bonus}"
    )

    return PurchaseResult(
        order_id=order.pk,
        item_id=item_id,
        points_used=required,
        remaining_points=debit.new_balance,
        seller_bonus=seller_bonus,
        warnings=warnings,
    )


# ============================================================================
# Swaps
# ============================================================================

@retry_on_lock_failure
def create_swap(requester_id, offered_item_id, requested_item_id, message=None,
                using=DEFAULT_DB_ALIAS):
    """
    Propose exchanging the requester's item for another user's item.

    Raises:
        ItemNotFound: If either item is missing or not active
        SelfSwap: If the requested item already belongs to the requester
        NotOwner: If the requester does not own the offered item
        DuplicatePending: If the same proposal is already pending
    """
    catalog = CatalogStore(using)
    offered = catalog.get_item(offered_item_id)
    requested = catalog.get_item(requested_item_id)

    if requested.owner_id == requester_id:
        raise SelfSwap()
    if offered.owner_id != requester_id:
        raise NotOwner()

    with transaction.atomic(using=using):
        # Locking both items serializes concurrent duplicate proposals.
        locked = acquire_locks(using=using, item_ids=[offered_item_id, requested_item_id])
        offered = locked.items[offered_item_id]
        requested = locked.items[requested_item_id]

        if not offered.is_available() or not requested.is_available():
            raise ItemNotFound('One of the items is no longer available.')
        if requested.owner_id == requester_id:
            raise SelfSwap()
        if offered.owner_id != requester_id:
            raise NotOwner()

        duplicate = Swap.objects.using(using).filter(
            requester_id=requester_id,
            requester_item_id=offered_item_id,
            target_item_id=requested_item_id,
            status=Swap.STATUS_PENDING,
        ).exists()
        if duplicate:
            raise DuplicatePending()

        swap = Swap.objects.using(using).create(
            requester_id=requester_id,
            requester_item_id=offered_item_id,
            target_user_id=requested.owner_id,
            target_item_id=requested_item_id,
            status=Swap.STATUS_PENDING,
            message=message or '',
        )

    logger.info(
        f"Swap {swap.pk} proposed: user {requester_id} offers item {offered_item_id} "
        f"for item {requested_item_id} of user {requested.owner_id}"
    )
    return SwapCreated(swap_id=swap.pk, created_at=swap.created_at, target_user_id=requested.owner_id)


def _save_status(swap, using, *extra_fields):
    swap.save(using=using, update_fields=['status', 'updated_at', *extra_fields])


def _reject_swap(swap_id, using):
    with transaction.atomic(using=using):
        swap = acquire_locks(using=using, swap_id=swap_id).swap
        if swap.status == Swap.STATUS_REJECTED:
            return SwapResolution(swap_id=swap.pk, status=swap.status)
        if swap.status != Swap.STATUS_PENDING:
            raise SwapNotPending(f'Swap {swap_id} is {swap.status}, not pending.')

        swap.transition_to(Swap.STATUS_REJECTED)
        _save_status(swap, using)

    logger.info(f"Swap {swap_id} rejected by user {swap.target_user_id}")
    return SwapResolution(swap_id=swap.pk, status=swap.status)


def _accept_swap(swap, using):
    catalog = CatalogStore(using)
    transfer_error = None
    warnings = []

    with transaction.atomic(using=using):
        locked = acquire_locks(
            using=using,
            swap_id=swap.pk,
            item_ids=[swap.requester_item_id, swap.target_item_id],
            user_ids=[swap.requester_id, swap.target_user_id],
        )
        swap = locked.swap
        if swap.status != Swap.STATUS_PENDING:
            raise SwapNotPending(f'Swap {swap.pk} is {swap.status}, not pending.')

        swap.transition_to(Swap.STATUS_ACCEPTED)
        _save_status(swap, using)

        offered = locked.items[swap.requester_item_id]
        requested = locked.items[swap.target_item_id]
        try:
            with transaction.atomic(using=using):
                if offered.owner_id != swap.requester_id or requested.owner_id != swap.target_user_id:
                    raise TransferFailure(
                        f'Swap {swap.pk} items are no longer owned by the swap parties.'
                    )
                catalog.swap_owners(offered, requested)
        except (TransferFailure, IntegrityError) as e:
            transfer_error = e
            swap.transition_to(Swap.STATUS_PENDING)
            _save_status(swap, using)
            logger.warning(f"Swap {swap.pk} transfer failed, status reverted to pending: {e}")
        else:
            swap.transition_to(Swap.STATUS_COMPLETED)
            _save_status(swap, using, 'completed_at')

            bonus = int(exchange_setting('SWAP_COMPLETION_BONUS'))
            description = f'Swap completed: {offered.title} <-> {requested.title}'
            for party_id in (swap.requester_id, swap.target_user_id):
                warning = _award_secondary_bonus(
                    'swap_bonus', party_id, bonus, description, swap.pk, SWAP_REFERENCE, using
                )
                if warning is not None:
                    warnings.append(warning)

    if transfer_error is not None:
        if isinstance(transfer_error, TransferFailure):
            detail = transfer_error.message
        else:
            detail = f'Swap {swap.pk} transfer failed.'
        raise TransferFailure(
            f'{detail} The swap is pending again; the requester should cancel it '
            f'if either item is no longer available.'
        ) from transfer_error

    logger.info(
        f"Swap {swap.pk} completed: item {swap.requester_item_id} -> user {swap.target_user_id}, "
        f"item {swap.target_item_id} -> user {swap.requester_id}"
    )
    return SwapResolution(swap_id=swap.pk, status=swap.status, warnings=warnings)


@retry_on_lock_failure
def resolve_swap(swap_id, caller_id, action, using=DEFAULT_DB_ALIAS):
    """
    Accept or reject a pending swap as its target user.

    Rejecting an already-rejected swap returns 'rejected' again. Accepting
    moves the swap to accepted, exchanges both owners in one update and then
    marks it completed; if the exchange fails the swap goes back to pending
    and TransferFailure is raised.

    Raises:
        InvalidAction: If action is not accept or reject
        SwapNotFound: If the swap does not exist
        NotAuthorized: If the caller is not the target user
        SwapNotPending: If the swap is in any other non-pending state
        TransferFailure: If the ownership exchange failed
    """
    if action not in RESOLVE_ACTIONS:
        raise InvalidAction('Invalid action. Must be accept or reject')

    try:
        swap = Swap.objects.using(using).get(pk=swap_id)
    except Swap.DoesNotExist:
        raise SwapNotFound(f'Swap {swap_id} does not exist.')

    if swap.target_user_id != caller_id:
        logger.warning(f"User {caller_id} attempted to {action} swap {swap_id} they are not the target of")
        raise NotAuthorized()

    if action == ACTION_REJECT:
        return _reject_swap(swap_id, using)
    return _accept_swap(swap, using)


@retry_on_lock_failure
def cancel_swap(swap_id, caller_id, using=DEFAULT_DB_ALIAS):
    """
    Withdraw a pending swap as its requester. Cancelling twice is harmless.

    Raises:
        SwapNotFound, NotAuthorized, SwapNotPending
    """
    with transaction.atomic(using=using):
        swap = acquire_locks(using=using, swap_id=swap_id).swap
        if swap.requester_id != caller_id:
            raise NotAuthorized('Only the requester can cancel this swap.')
        if swap.status == Swap.STATUS_CANCELLED:
            return SwapResolution(swap_id=swap.pk, status=swap.status)
        if swap.status != Swap.STATUS_PENDING:
            raise SwapNotPending(f'Swap {swap_id} is {swap.status}, not pending.')

        swap.transition_to(Swap.STATUS_CANCELLED)
        _save_status(swap, using)

    logger.info(f"Swap {swap_id} cancelled by requester {caller_id}")
    return SwapResolution(swap_id=swap.pk, status=swap.status)


def list_swaps(user_id, using=DEFAULT_DB_ALIAS):
    """
    Swaps a user takes part in.

    Returns:
        dict: 'outgoing' (requested by the user) and 'incoming' (targeting the user)
    """
    swaps = Swap.objects.using(using).select_related(
        'requester', 'target_user', 'requester_item', 'target_item'
    )
    return {
        'outgoing': list(swaps.filter(requester_id=user_id)),
        'incoming': list(swaps.filter(target_user_id=user_id)),
    }
