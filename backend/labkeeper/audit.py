"""Inventory audit trail: typed snapshots, the best-effort writer and the lab query.

Every entry carries a ``labId`` in both snapshots so it stays attributable to
its lab once the inventory row it describes has been deleted and the
reference on the log has been nulled.
"""

from __future__ import annotations

import enum
import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, selectinload

from . import models
from .rbac import InventorySource

# purpose: record inventory mutations and rebuild per-lab history from snapshots
# status: active
# depends_on: labkeeper.models.InventoryLog

logger = logging.getLogger(__name__)

LOG_QUERY_MAX_LIMIT = int(os.getenv("LOG_QUERY_MAX_LIMIT", "100"))
LOG_QUERY_DEFAULT_LIMIT = int(os.getenv("LOG_QUERY_DEFAULT_LIMIT", "50"))


class InventoryAction(str, enum.Enum):
    STOCK_ADD = "STOCK_ADD"
    STOCK_REMOVE = "STOCK_REMOVE"
    STOCK_UPDATE = "STOCK_UPDATE"
    LOCATION_CHANGE = "LOCATION_CHANGE"
    MIN_STOCK_UPDATE = "MIN_STOCK_UPDATE"
    ITEM_ADDED = "ITEM_ADDED"
    ITEM_REMOVED = "ITEM_REMOVED"
    ITEM_UPDATE = "ITEM_UPDATE"


class _Snapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class LabScoped(_Snapshot):
    """Lab attribution shared by every snapshot."""

    lab_id: int


class StockLevel(LabScoped):
    current_stock: int


class LocationValue(LabScoped):
    location: str


class MinStockLevel(LabScoped):
    min_stock: int


class FieldValues(LabScoped):
    # generic ITEM_UPDATE payload: any updated field besides the dedicated ones
    model_config = ConfigDict(extra="allow")


class CatalogRef(_Snapshot):
    id: int
    name: str
    description: Optional[str] = None


class ItemRecord(LabScoped):
    item_id: int
    item_name: str
    location: str
    item_unit: str
    current_stock: int
    min_stock: int
    tag_ids: list[int] = Field(default_factory=list)
    item: Optional[CatalogRef] = None


class _Change(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quantity_changed: Optional[int] = None


class ItemAdded(_Change):
    action: Literal["ITEM_ADDED"] = "ITEM_ADDED"
    previous: LabScoped
    new: ItemRecord


class ItemRemoved(_Change):
    action: Literal["ITEM_REMOVED"] = "ITEM_REMOVED"
    previous: ItemRecord
    new: LabScoped


class StockChange(_Change):
    action: Literal["STOCK_ADD", "STOCK_REMOVE", "STOCK_UPDATE"]
    previous: StockLevel
    new: StockLevel


class LocationChange(_Change):
    action: Literal["LOCATION_CHANGE"] = "LOCATION_CHANGE"
    previous: LocationValue
    new: LocationValue


class MinStockChange(_Change):
    action: Literal["MIN_STOCK_UPDATE"] = "MIN_STOCK_UPDATE"
    previous: MinStockLevel
    new: MinStockLevel


class ItemUpdate(_Change):
    action: Literal["ITEM_UPDATE"] = "ITEM_UPDATE"
    previous: FieldValues
    new: FieldValues


AuditChange = Annotated[
    Union[ItemAdded, ItemRemoved, StockChange, LocationChange, MinStockChange, ItemUpdate],
    Field(discriminator="action"),
]


def item_record(inv: models.LabInventoryItem, *, include_catalog: bool = False) -> ItemRecord:
    catalog = None
    if include_catalog and inv.item is not None:
        catalog = CatalogRef(id=inv.item.id, name=inv.item.name, description=inv.item.description)
    return ItemRecord(
        lab_id=inv.lab_id,
        item_id=inv.item_id,
        item_name=inv.item.name if inv.item is not None else "",
        location=inv.location,
        item_unit=inv.item_unit,
        current_stock=inv.current_stock,
        min_stock=inv.min_stock,
        tag_ids=[link.item_tag_id for link in inv.tag_links],
        item=catalog,
    )


def item_added(inv: models.LabInventoryItem) -> ItemAdded:
    return ItemAdded(previous=LabScoped(lab_id=inv.lab_id), new=item_record(inv))


def item_removed(inv: models.LabInventoryItem) -> ItemRemoved:
    return ItemRemoved(previous=item_record(inv, include_catalog=True), new=LabScoped(lab_id=inv.lab_id))


def stock_change(action: InventoryAction, lab_id: int, before: int, after: int) -> StockChange:
    return StockChange(
        action=InventoryAction(action).value,
        previous=StockLevel(lab_id=lab_id, current_stock=before),
        new=StockLevel(lab_id=lab_id, current_stock=after),
        quantity_changed=after - before,
    )


def location_change(lab_id: int, before: str, after: str) -> LocationChange:
    return LocationChange(
        previous=LocationValue(lab_id=lab_id, location=before),
        new=LocationValue(lab_id=lab_id, location=after),
    )


def min_stock_change(lab_id: int, before: int, after: int) -> MinStockChange:
    return MinStockChange(
        previous=MinStockLevel(lab_id=lab_id, min_stock=before),
        new=MinStockLevel(lab_id=lab_id, min_stock=after),
    )


def field_update(lab_id: int, field: str, before: Any, after: Any) -> ItemUpdate:
    key = to_camel(field)
    return ItemUpdate(
        previous=FieldValues(lab_id=lab_id, **{key: before}),
        new=FieldValues(lab_id=lab_id, **{key: after}),
    )


class AuditLogger:
    """Writes inventory log rows inside the caller's transaction.

    Each write runs in its own savepoint so a failure rolls back only the log
    row. Failures are logged and swallowed; the mutation being described
    carries on regardless.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        change: AuditChange,
        *,
        item_id: int | None,
        user_id: int | None,
        member_id: int | None,
        source: InventorySource,
        reason: str | None = None,
    ) -> models.InventoryLog | None:
        if user_id is None:
            logger.warning("Skipping %s log for item %s: no acting user", InventoryAction(change.action).value, item_id)
            return None
        lab_id = change.new.lab_id
        try:
            with self.db.begin_nested():
                entry = models.InventoryLog(
                    lab_inventory_item_id=item_id,
                    user_id=user_id,
                    member_id=member_id,
                    action=InventoryAction(change.action).value,
                    source=InventorySource(source).value,
                    previous_values=change.previous.model_dump(by_alias=True, exclude_none=True),
                    new_values=change.new.model_dump(by_alias=True, exclude_none=True),
                    quantity_changed=change.quantity_changed,
                    reason=reason,
                )
                self.db.add(entry)
                self.db.flush()
        except Exception:
            logger.exception(
                "Failed to record %s log (lab=%s item=%s user=%s)",
                InventoryAction(change.action).value,
                lab_id,
                item_id,
                user_id,
            )
            return None
        return entry


@dataclass
class LogFilters:
    limit: int | None = None
    offset: int = 0
    action: str | None = None
    source: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    user_id: int | None = None
    member_id: int | None = None


@dataclass
class LogPage:
    logs: list[models.InventoryLog]
    total_count: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_prev_page: bool


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return LOG_QUERY_DEFAULT_LIMIT
    return max(1, min(limit, LOG_QUERY_MAX_LIMIT))


def lab_log_query(db: Session, lab_id: int):
    """Logs belonging to ``lab_id`` through a live item or a retained snapshot."""

    Log = models.InventoryLog
    Inv = models.LabInventoryItem
    return (
        db.query(Log)
        .outerjoin(Inv, Log.lab_inventory_item_id == Inv.id)
        .filter(
            or_(
                and_(Log.lab_inventory_item_id.is_not(None), Inv.lab_id == lab_id),
                and_(
                    Log.lab_inventory_item_id.is_(None),
                    Log.previous_values["labId"].as_integer() == lab_id,
                ),
            )
        )
    )


def query_lab_logs(db: Session, lab_id: int, filters: LogFilters | None = None) -> LogPage:
    filters = filters or LogFilters()
    limit = clamp_limit(filters.limit)
    offset = max(filters.offset or 0, 0)

    Log = models.InventoryLog
    query = lab_log_query(db, lab_id)
    if filters.action:
        query = query.filter(Log.action == filters.action)
    if filters.source:
        query = query.filter(Log.source == filters.source)
    if filters.start_date:
        query = query.filter(Log.created_at >= _as_utc(filters.start_date))
    if filters.end_date:
        query = query.filter(Log.created_at <= _as_utc(filters.end_date))
    if filters.user_id is not None:
        query = query.filter(Log.user_id == filters.user_id)
    if filters.member_id is not None:
        query = query.filter(Log.member_id == filters.member_id)

    total = query.count()
    logs = (
        query.options(
            selectinload(Log.user),
            selectinload(Log.member),
            selectinload(Log.lab_inventory_item).selectinload(models.LabInventoryItem.item),
        )
        .order_by(Log.created_at.desc(), Log.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return LogPage(
        logs=logs,
        total_count=total,
        total_pages=math.ceil(total / limit),
        current_page=offset // limit + 1,
        has_next_page=offset + limit < total,
        has_prev_page=offset > 0,
    )
