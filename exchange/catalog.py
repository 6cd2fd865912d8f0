"""
Catalog store: the item records whose ownership the exchange moves.

Writes are conditional updates (compare-and-set on the expected owner and
status), so a write against a stale view of the item changes nothing and is
reported as a TransferFailure instead of silently overwriting another
transfer.
"""

import logging

from django.db import DEFAULT_DB_ALIAS
from django.db.models import Case, Value, When
from django.utils import timezone

from .exceptions import ItemNotFound, TransferFailure
from .models import Item

logger = logging.getLogger(__name__)


class CatalogStore:
    """
    Item access for the exchange coordinator.

    Args:
        using: Database alias all reads and writes go through
    """

    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using

    def _items(self):
        return Item.objects.using(self.using)

    def get_item(self, item_id, active_only=True):
        """
        Read an item without locking it.

        Args:
            item_id: Item primary key
            active_only: Treat non-active items as missing

        Returns:
            Item: The item record

        Raises:
            ItemNotFound: If the item does not exist (or is not active)
        """
        try:
            item = self._items().get(pk=item_id)
        except Item.DoesNotExist:
            raise ItemNotFound(f'Item {item_id} does not exist.')

        if active_only and not item.is_available():
            raise ItemNotFound(f'Item {item_id} is not available (status: {item.status}).')

        return item

    def set_owner(self, item, new_owner_id):
        """
        Reassign an active item to a new owner.

        Args:
            item: Item as last read (its owner_id is the expected current owner)
            new_owner_id: User receiving the item

        Raises:
            TransferFailure: If the item changed owner or left active status
        """
        updated = self._items().filter(
            pk=item.pk,
            owner_id=item.owner_id,
            status=Item.STATUS_ACTIVE,
        ).update(owner_id=new_owner_id, updated_at=timezone.now())

        if updated != 1:
            raise TransferFailure(f'Could not transfer item {item.pk} to user {new_owner_id}.')

        logger.info(f"Item {item.pk} owner changed: {item.owner_id} -> {new_owner_id}")
        item.owner_id = new_owner_id

    def set_status(self, item, status):
        """
        Change an item's lifecycle status.

        Raises:
            TransferFailure: If the item no longer exists
        """
        updated = self._items().filter(pk=item.pk).update(
            status=status,
            updated_at=timezone.now()
        )
        if updated != 1:
            raise TransferFailure(f'Could not set status of item {item.pk} to {status}.')
        item.status = status

    def swap_owners(self, item_a, item_b):
        """
        Exchange the owners of two items in a single UPDATE statement.

        Both items must still be active and owned by the owners recorded on
        the passed instances; otherwise nothing is written.

        Raises:
            TransferFailure: If either item changed since it was read
        """
        owner_a, owner_b = item_a.owner_id, item_b.owner_id
        if item_a.pk == item_b.pk or owner_a == owner_b:
            raise TransferFailure('A swap needs two distinct items with distinct owners.')

        guard = self._items().filter(status=Item.STATUS_ACTIVE)
        current = dict(guard.filter(pk__in=[item_a.pk, item_b.pk]).values_list('pk', 'owner_id'))
        if current != {item_a.pk: owner_a, item_b.pk: owner_b}:
            raise TransferFailure(
                f'Items {item_a.pk} and {item_b.pk} are no longer available for this swap.'
            )

        updated = guard.filter(pk__in=[item_a.pk, item_b.pk]).update(
            owner_id=Case(
                When(pk=item_a.pk, then=Value(owner_b)),
                When(pk=item_b.pk, then=Value(owner_a)),
            ),
            updated_at=timezone.now(),
        )
        if updated != 2:
            raise TransferFailure(f'Swap of items {item_a.pk} and {item_b.pk} was incomplete.')

        logger.info(
            f"Swapped owners: item {item_a.pk} {owner_a} -> {owner_b}, "
            f"item {item_b.pk} {owner_b} -> {owner_a}"
        )
        item_a.owner_id, item_b.owner_id = owner_b, owner_a
