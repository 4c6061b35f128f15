from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..errors import NotFound
from ..permissions import GLOBAL_ADMIN, LAB_MEMBER
from ..rbac import GlobalPermission, LabAccess, LabPermission, Surface

router = APIRouter(tags=["labs"])

require_admin = GlobalPermission(GLOBAL_ADMIN)


@router.post("/api/admin/labs", response_model=schemas.LabOut, status_code=201)
def create_lab(
    lab: schemas.LabCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    db_lab = models.Lab(**lab.model_dump())
    db.add(db_lab)
    db.commit()
    db.refresh(db_lab)
    return db_lab


@router.get("/api/admin/labs", response_model=List[schemas.LabOut])
def list_labs(db: Session = Depends(get_db), user: models.User = Depends(require_admin)):
    return db.query(models.Lab).order_by(models.Lab.id).all()


@router.get("/api/labs/{lab_id}", response_model=schemas.LabOut)
def get_lab(
    access: LabAccess = Depends(LabPermission(Surface.LAB, LAB_MEMBER)),
    db: Session = Depends(get_db),
):
    lab = db.get(models.Lab, access.lab_id)
    if lab is None:
        raise NotFound("Lab not found")
    return lab
