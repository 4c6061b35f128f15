from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .. import audit, models
from ..audit import AuditLogger, InventoryAction
from ..errors import Conflict, InvalidInput, InvalidTag, NotFound
from ..rbac import LabAccess

# purpose: mutate a lab's inventory and write one audit entry per change
# status: active
# depends_on: labkeeper.models (LabInventoryItem, LabItemTag, ItemTag), labkeeper.audit

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("location", "current_stock", "min_stock", "item_unit")


def _dedupe(ids: Iterable[int]) -> list[int]:
    seen: list[int] = []
    for value in ids:
        if value not in seen:
            seen.append(value)
    return seen


def _require_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{name} is required")
    return value.strip()


def _require_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer")
    if value < 0:
        raise InvalidInput(f"{name} cannot be negative")
    return value


class LabInventory:
    """Inventory Store operations for one session.

    Every operation expects the :class:`~labkeeper.rbac.LabAccess` returned
    by an allowed permission decision; the lab, actor, member and source of
    the resulting audit entries all come from it.
    """

    def __init__(self, db: Session, audit_logger: AuditLogger | None = None):
        self.db = db
        self.audit = audit_logger or AuditLogger(db)

    # reads

    def list_items(self, lab_id: int) -> list[models.LabInventoryItem]:
        return (
            self.db.query(models.LabInventoryItem)
            .options(
                selectinload(models.LabInventoryItem.item),
                selectinload(models.LabInventoryItem.tag_links).selectinload(models.LabItemTag.item_tag),
            )
            .filter(models.LabInventoryItem.lab_id == lab_id)
            .order_by(models.LabInventoryItem.id)
            .all()
        )

    def low_stock(self, lab_id: int) -> list[models.LabInventoryItem]:
        return [inv for inv in self.list_items(lab_id) if inv.current_stock <= inv.min_stock]

    def get_item(self, lab_id: int, item_id: int) -> models.LabInventoryItem:
        inv = (
            self.db.query(models.LabInventoryItem)
            .filter(
                models.LabInventoryItem.lab_id == lab_id,
                models.LabInventoryItem.item_id == item_id,
            )
            .first()
        )
        if inv is None:
            raise NotFound("Item not found in this lab inventory")
        return inv

    # writes

    def add_item(
        self,
        access: LabAccess,
        item_id: int,
        location: str,
        item_unit: str,
        current_stock: int = 0,
        min_stock: int = 0,
        tag_ids: Iterable[int] = (),
        reason: str | None = None,
    ) -> models.LabInventoryItem:
        lab = self.db.get(models.Lab, access.lab_id)
        if lab is None:
            raise NotFound("Lab not found")
        item = self.db.get(models.Item, item_id)
        if item is None:
            raise NotFound("Item not found")
        location = _require_text("location", location)
        item_unit = _require_text("itemUnit", item_unit)
        current_stock = _require_count("currentStock", current_stock)
        min_stock = _require_count("minStock", min_stock)

        if self._existing(lab.id, item.id) is not None:
            raise Conflict("Item already exists in this lab inventory")

        inv = models.LabInventoryItem(
            lab=lab,
            item=item,
            location=location,
            item_unit=item_unit,
            current_stock=current_stock,
            min_stock=min_stock,
        )
        self.db.add(inv)
        self._flush_or_conflict("Item already exists in this lab inventory")

        wanted = _dedupe(tag_ids)
        if wanted:
            tags = self.db.query(models.ItemTag).filter(models.ItemTag.id.in_(wanted)).all()
            found = {tag.id for tag in tags}
            missing = [tag_id for tag_id in wanted if tag_id not in found]
            if missing:
                self.db.rollback()
                logger.warning(
                    "Rolled back lab item %s in lab %s: unknown tags %s",
                    item_id,
                    access.lab_id,
                    missing,
                )
                raise InvalidTag("One or more tag IDs are invalid", invalid_tag_ids=missing)
            for tag in sorted(tags, key=lambda t: wanted.index(t.id)):
                inv.tag_links.append(models.LabItemTag(item_tag_id=tag.id, item_tag=tag))
            self._flush_or_conflict("Tag already assigned to this item")

        self.audit.record(
            audit.item_added(inv),
            item_id=inv.id,
            user_id=access.user_id,
            member_id=access.member_id,
            source=access.source,
            reason=reason,
        )
        self.db.commit()
        self.db.refresh(inv)
        logger.info("Added item %s to lab %s as %s", item_id, access.lab_id, inv.id)
        return inv

    def update_item(
        self,
        access: LabAccess,
        item_id: int,
        patch: dict[str, Any],
        reason: str | None = None,
    ) -> models.LabInventoryItem:
        """Apply the provided fields; one audit entry per field whose value changed."""

        unknown = sorted(set(patch) - set(UPDATABLE_FIELDS))
        if unknown:
            raise InvalidInput(f"Cannot update field(s): {', '.join(unknown)}")
        inv = self.get_item(access.lab_id, item_id)

        # validate every field before touching the row
        values: dict[str, Any] = {}
        for field in UPDATABLE_FIELDS:
            if field not in patch or patch[field] is None:
                continue
            if field in ("location", "item_unit"):
                values[field] = _require_text(field, patch[field])
            else:
                values[field] = _require_count(field, patch[field])

        changes: list[audit.AuditChange] = []
        for field, value in values.items():
            before = getattr(inv, field)
            if value == before:
                continue
            setattr(inv, field, value)
            changes.append(self._change_for(inv.lab_id, field, before, value))

        if not changes:
            return inv

        self.db.flush()
        for change in changes:
            self.audit.record(
                change,
                item_id=inv.id,
                user_id=access.user_id,
                member_id=access.member_id,
                source=access.source,
                reason=reason,
            )
        self.db.commit()
        self.db.refresh(inv)
        return inv

    def remove_item(self, access: LabAccess, item_id: int, reason: str | None = None) -> audit.ItemRecord:
        inv = self.get_item(access.lab_id, item_id)
        change = audit.item_removed(inv)
        self.audit.record(
            change,
            item_id=inv.id,
            user_id=access.user_id,
            member_id=access.member_id,
            source=access.source,
            reason=reason,
        )
        # the loaded collection may predate the ITEM_REMOVED row
        self.db.expire(inv, ["inventory_logs"])
        self.db.delete(inv)
        self.db.commit()
        logger.info("Removed item %s from lab %s", item_id, access.lab_id)
        return change.previous

    def add_tags(self, access: LabAccess, item_id: int, tag_ids: Iterable[int]) -> models.LabInventoryItem:
        inv = self.get_item(access.lab_id, item_id)
        wanted = _dedupe(tag_ids)
        if not wanted:
            raise InvalidInput("tagIds must not be empty")
        tags = self.db.query(models.ItemTag).filter(models.ItemTag.id.in_(wanted)).all()
        found = {tag.id for tag in tags}
        missing = [tag_id for tag_id in wanted if tag_id not in found]
        if missing:
            raise NotFound("Tag not found", tag_ids=missing)
        attached = {link.item_tag_id for link in inv.tag_links}
        already = [tag_id for tag_id in wanted if tag_id in attached]
        if already:
            raise Conflict("Tag already assigned to this item", tag_ids=already)
        for tag in sorted(tags, key=lambda t: wanted.index(t.id)):
            inv.tag_links.append(models.LabItemTag(item_tag_id=tag.id, item_tag=tag))
        self._flush_or_conflict("Tag already assigned to this item")
        self.db.commit()
        self.db.refresh(inv)
        return inv

    def remove_tag(self, access: LabAccess, item_id: int, tag_id: int) -> models.LabInventoryItem:
        inv = self.get_item(access.lab_id, item_id)
        link = next((link for link in inv.tag_links if link.item_tag_id == tag_id), None)
        if link is None:
            raise NotFound("Tag is not assigned to this item")
        inv.tag_links.remove(link)
        self.db.commit()
        self.db.refresh(inv)
        return inv

    def take_stock(
        self, access: LabAccess, item_id: int, amount: int, reason: str | None = None
    ) -> models.LabInventoryItem:
        return self._move_stock(access, item_id, -self._positive(amount), reason)

    def replenish_stock(
        self, access: LabAccess, item_id: int, amount: int, reason: str | None = None
    ) -> models.LabInventoryItem:
        return self._move_stock(access, item_id, self._positive(amount), reason)

    # helpers

    def _existing(self, lab_id: int, item_id: int):
        return (
            self.db.query(models.LabInventoryItem.id)
            .filter(
                models.LabInventoryItem.lab_id == lab_id,
                models.LabInventoryItem.item_id == item_id,
            )
            .first()
        )

    @staticmethod
    def _positive(amount: Any) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidInput("amount must be a positive integer")
        return amount

    def _move_stock(
        self, access: LabAccess, item_id: int, delta: int, reason: str | None
    ) -> models.LabInventoryItem:
        inv = self.get_item(access.lab_id, item_id)
        before = inv.current_stock
        after = before + delta
        if after < 0:
            raise InvalidInput(
                f"Cannot take {-delta} {inv.item_unit}: only {before} in stock",
                current_stock=before,
            )
        inv.current_stock = after
        self.db.flush()
        action = InventoryAction.STOCK_ADD if delta > 0 else InventoryAction.STOCK_REMOVE
        self.audit.record(
            audit.stock_change(action, inv.lab_id, before, after),
            item_id=inv.id,
            user_id=access.user_id,
            member_id=access.member_id,
            source=access.source,
            reason=reason,
        )
        self.db.commit()
        self.db.refresh(inv)
        return inv

    @staticmethod
    def _change_for(lab_id: int, field: str, before: Any, after: Any) -> audit.AuditChange:
        if field == "location":
            return audit.location_change(lab_id, before, after)
        if field == "current_stock":
            return audit.stock_change(InventoryAction.STOCK_UPDATE, lab_id, before, after)
        if field == "min_stock":
            return audit.min_stock_change(lab_id, before, after)
        return audit.field_update(lab_id, field, before, after)

    def _flush_or_conflict(self, detail: str) -> None:
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info("Unique constraint rejected write: %s", exc.orig)
            raise Conflict(detail)
