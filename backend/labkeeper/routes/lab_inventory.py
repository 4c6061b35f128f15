from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from .. import pubsub, schemas
from ..database import get_db
from ..errors import InvalidInput
from ..permissions import LAB_MANAGER, LAB_MEMBER
from ..rbac import LabAccess, LabPermission, Surface
from ..services.bulk_import import import_csv
from ..services.lab_inventory import LabInventory

# purpose: lab inventory endpoints, mounted once per surface so the audit source follows the URL
# status: active
# depends_on: labkeeper.services.lab_inventory


def build_router(prefix: str, surface: Surface) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[f"{surface.value}-inventory"])
    manage = LabPermission(surface, LAB_MANAGER)
    use = LabPermission(surface, LAB_MEMBER)

    @router.get("/{lab_id}/inventory", response_model=List[schemas.LabInventoryItemOut])
    async def list_inventory(access: LabAccess = Depends(use), db: Session = Depends(get_db)):
        return LabInventory(db).list_items(access.lab_id)

    @router.get("/{lab_id}/inventory/low-stock", response_model=List[schemas.LabInventoryItemOut])
    async def list_low_stock(access: LabAccess = Depends(use), db: Session = Depends(get_db)):
        return LabInventory(db).low_stock(access.lab_id)

    @router.get("/{lab_id}/inventory/{item_id}", response_model=schemas.LabInventoryItemOut)
    async def get_inventory_item(
        item_id: int,
        access: LabAccess = Depends(use),
        db: Session = Depends(get_db),
    ):
        return LabInventory(db).get_item(access.lab_id, item_id)

    @router.post("/{lab_id}/inventory", response_model=schemas.LabInventoryItemOut, status_code=201)
    async def add_inventory_item(
        data: schemas.LabInventoryItemCreate,
        access: LabAccess = Depends(manage),
        db: Session = Depends(get_db),
    ):
        inv = LabInventory(db).add_item(
            access,
            item_id=data.item_id,
            location=data.location,
            item_unit=data.item_unit,
            current_stock=data.current_stock,
            min_stock=data.min_stock,
            tag_ids=data.tag_ids,
            reason=data.reason,
        )
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "item_added", "itemId": inv.item_id, "labInventoryItemId": inv.id},
        )
        return inv

    @router.put("/{lab_id}/inventory/{item_id}", response_model=schemas.LabInventoryItemOut)
    async def update_inventory_item(
        item_id: int,
        data: schemas.LabInventoryItemUpdate,
        access: LabAccess = Depends(manage),
        db: Session = Depends(get_db),
    ):
        patch = data.model_dump(exclude_unset=True)
        reason = patch.pop("reason", None)
        inv = LabInventory(db).update_item(access, item_id, patch, reason=reason)
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "item_updated", "itemId": inv.item_id, "fields": sorted(patch)},
        )
        return inv

    @router.delete("/{lab_id}/inventory/{item_id}", response_model=schemas.RemovedItemOut)
    async def remove_inventory_item(
        item_id: int,
        access: LabAccess = Depends(manage),
        db: Session = Depends(get_db),
    ):
        record = LabInventory(db).remove_item(access, item_id)
        await pubsub.publish_lab_event(access.lab_id, {"type": "item_removed", "itemId": item_id})
        return schemas.RemovedItemOut(
            message="Item removed from lab inventory",
            item=record.model_dump(by_alias=True, exclude_none=True),
        )

    @router.post("/{lab_id}/inventory/{item_id}/tags", response_model=schemas.LabInventoryItemOut)
    async def add_item_tags(
        item_id: int,
        data: schemas.TagAssignment,
        access: LabAccess = Depends(manage),
        db: Session = Depends(get_db),
    ):
        inv = LabInventory(db).add_tags(access, item_id, data.tag_ids)
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "tags_changed", "itemId": item_id, "tagIds": [tag.id for tag in inv.tags]},
        )
        return inv

    @router.delete("/{lab_id}/inventory/{item_id}/tags/{tag_id}", response_model=schemas.LabInventoryItemOut)
    async def remove_item_tag(
        item_id: int,
        tag_id: int,
        access: LabAccess = Depends(manage),
        db: Session = Depends(get_db),
    ):
        inv = LabInventory(db).remove_tag(access, item_id, tag_id)
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "tags_changed", "itemId": item_id, "tagIds": [tag.id for tag in inv.tags]},
        )
        return inv

    @router.post("/{lab_id}/inventory/{item_id}/take", response_model=schemas.LabInventoryItemOut)
    async def take_stock(
        item_id: int,
        data: schemas.StockMovement,
        access: LabAccess = Depends(use),
        db: Session = Depends(get_db),
    ):
        inv = LabInventory(db).take_stock(access, item_id, data.amount, reason=data.reason)
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "stock_changed", "itemId": item_id, "currentStock": inv.current_stock},
        )
        return inv

    @router.post("/{lab_id}/inventory/{item_id}/replenish", response_model=schemas.LabInventoryItemOut)
    async def replenish_stock(
        item_id: int,
        data: schemas.StockMovement,
        access: LabAccess = Depends(use),
        db: Session = Depends(get_db),
    ):
        inv = LabInventory(db).replenish_stock(access, item_id, data.amount, reason=data.reason)
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "stock_changed", "itemId": item_id, "currentStock": inv.current_stock},
        )
        return inv

    return router


admin_router = build_router("/api/admin/lab", Surface.ADMIN)
router = build_router("/api/lab", Surface.LAB)


@admin_router.post("/{lab_id}/inventory/import", response_model=schemas.ImportResultOut)
async def import_inventory(
    file: UploadFile = File(...),
    access: LabAccess = Depends(LabPermission(Surface.BULK_IMPORT, LAB_MANAGER)),
    db: Session = Depends(get_db),
):
    raw = await file.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise InvalidInput("CSV upload must be UTF-8 encoded")
    result = import_csv(LabInventory(db), access, text)
    if result.created:
        await pubsub.publish_lab_event(
            access.lab_id,
            {"type": "item_added", "itemIds": [inv.item_id for inv in result.created]},
        )
    return schemas.ImportResultOut(
        created=[schemas.LabInventoryItemOut.model_validate(inv) for inv in result.created],
        errors=[schemas.ImportRowError(row=e.row, detail=e.detail) for e in result.errors],
    )
