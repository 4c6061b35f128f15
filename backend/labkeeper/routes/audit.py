from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..audit import InventoryAction, LogFilters, query_lab_logs
from ..database import get_db
from ..permissions import LAB_MANAGER
from ..rbac import InventorySource, LabAccess, LabPermission, Surface


def build_router(prefix: str, surface: Surface) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[f"{surface.value}-inventory-logs"])

    @router.get("/{lab_id}/inventory-logs", response_model=schemas.LogPageOut)
    async def list_inventory_logs(
        limit: Optional[int] = Query(None, ge=1),
        offset: int = Query(0, ge=0),
        action: Optional[InventoryAction] = None,
        source: Optional[InventorySource] = None,
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
        user_id: Optional[int] = Query(None, alias="userId"),
        member_id: Optional[int] = Query(None, alias="memberId"),
        access: LabAccess = Depends(LabPermission(surface, LAB_MANAGER)),
        db: Session = Depends(get_db),
    ):
        page = query_lab_logs(
            db,
            access.lab_id,
            LogFilters(
                limit=limit,
                offset=offset,
                action=action.value if action else None,
                source=source.value if source else None,
                start_date=start_date,
                end_date=end_date,
                user_id=user_id,
                member_id=member_id,
            ),
        )
        return schemas.LogPageOut.model_validate(page)

    return router


admin_router = build_router("/api/admin/lab", Surface.ADMIN)
router = build_router("/api/lab", Surface.LAB)
