"""ORM guard keeping inventory log rows append-only.

The only write an existing log row accepts is the nulling of one of its
references (item, member, user) when the referenced row is deleted. Anything
else raised from a flush aborts the transaction before SQL is emitted.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, inspect

from . import models
from .errors import ImmutableRecord

# purpose: reject in-place edits and deletes of inventory log rows
# status: active

logger = logging.getLogger(__name__)

NULLABLE_REFERENCES = frozenset({"lab_inventory_item_id", "member_id", "user_id"})


def _changed_columns(target) -> dict[str, object]:
    state = inspect(target)
    changed: dict[str, object] = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.has_changes():
            changed[attr.key] = history.added[0] if history.added else None
    return changed


def _check_log_update(mapper, connection, target) -> None:
    changed = _changed_columns(target)
    illegal = sorted(
        key for key, value in changed.items() if key not in NULLABLE_REFERENCES or value is not None
    )
    if illegal:
        logger.error("Blocked update of inventory log %s: %s", target.id, ", ".join(illegal))
        raise ImmutableRecord(
            "Inventory log entries are immutable",
            log_id=target.id,
            fields=illegal,
        )


def _check_log_delete(mapper, connection, target) -> None:
    logger.error("Blocked delete of inventory log %s", target.id)
    raise ImmutableRecord("Inventory log entries cannot be deleted", log_id=target.id)


def register_immutability_listeners() -> None:
    if event.contains(models.InventoryLog, "before_update", _check_log_update):
        return
    event.listen(models.InventoryLog, "before_update", _check_log_update)
    event.listen(models.InventoryLog, "before_delete", _check_log_delete)


def unregister_immutability_listeners() -> None:
    if event.contains(models.InventoryLog, "before_update", _check_log_update):
        event.remove(models.InventoryLog, "before_update", _check_log_update)
        event.remove(models.InventoryLog, "before_delete", _check_log_delete)
