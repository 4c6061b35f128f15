from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field, replace

from .. import models
from ..errors import InvalidInput, LabkeeperError
from ..rbac import InventorySource, LabAccess
from .lab_inventory import LabInventory

# purpose: add many lab inventory items from one CSV upload, reporting failures per row
# status: active
# depends_on: labkeeper.services.lab_inventory

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("itemId", "location", "itemUnit", "currentStock", "minStock")
TAG_SEPARATOR = ";"


@dataclass
class RowError:
    row: int
    detail: str


@dataclass
class ImportResult:
    created: list[models.LabInventoryItem] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)


def _int_cell(row: dict, column: str) -> int:
    raw = (row.get(column) or "").strip()
    if not raw:
        raise InvalidInput(f"{column} is required")
    try:
        return int(raw)
    except ValueError:
        raise InvalidInput(f"{column} must be an integer, got {raw!r}")


def _tag_cell(row: dict) -> list[int]:
    raw = (row.get("tagIds") or "").strip()
    if not raw:
        return []
    try:
        return [int(part) for part in raw.split(TAG_SEPARATOR) if part.strip()]
    except ValueError:
        raise InvalidInput(f"tagIds must be integers separated by '{TAG_SEPARATOR}'")


def import_csv(inventory: LabInventory, access: LabAccess, text: str) -> ImportResult:
    """Add one lab item per CSV row; rows are numbered from 1 after the header."""

    reader = csv.DictReader(io.StringIO(text))
    missing = [column for column in REQUIRED_COLUMNS if column not in (reader.fieldnames or [])]
    if missing:
        raise InvalidInput(f"CSV is missing column(s): {', '.join(missing)}")

    access = replace(access, source=InventorySource.BULK_IMPORT)
    result = ImportResult()
    for number, row in enumerate(reader, start=1):
        try:
            inv = inventory.add_item(
                access,
                item_id=_int_cell(row, "itemId"),
                location=row.get("location") or "",
                item_unit=row.get("itemUnit") or "",
                current_stock=_int_cell(row, "currentStock"),
                min_stock=_int_cell(row, "minStock"),
                tag_ids=_tag_cell(row),
            )
        except LabkeeperError as exc:
            result.errors.append(RowError(row=number, detail=exc.detail))
            continue
        result.created.append(inv)
    logger.info(
        "Imported %s item(s) into lab %s, %s row(s) rejected",
        len(result.created),
        access.lab_id,
        len(result.errors),
    )
    return result
