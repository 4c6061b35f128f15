from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db
from ..errors import Conflict
from ..permissions import GLOBAL_ADMIN
from ..rbac import GlobalPermission
from ..services import lab_members

# purpose: global reference data shared by every lab (catalog items, tags, lab roles)
# status: active

router = APIRouter(tags=["catalog"])

require_admin = GlobalPermission(GLOBAL_ADMIN)


def _commit_unique(db: Session, detail: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(detail)


@router.post("/api/admin/items", response_model=schemas.ItemOut, status_code=201)
def create_item(
    item: schemas.ItemCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    db_item = models.Item(**item.model_dump())
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    return db_item


@router.get("/api/items", response_model=List[schemas.ItemOut])
def list_items(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return db.query(models.Item).order_by(models.Item.name).all()


@router.post("/api/admin/tags", response_model=schemas.TagOut, status_code=201)
def create_tag(
    tag: schemas.TagCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    db_tag = models.ItemTag(**tag.model_dump())
    db.add(db_tag)
    _commit_unique(db, "A tag with this name already exists")
    db.refresh(db_tag)
    return db_tag


@router.get("/api/tags", response_model=List[schemas.TagOut])
def list_tags(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return db.query(models.ItemTag).order_by(models.ItemTag.name).all()


@router.get("/api/lab-roles", response_model=List[schemas.LabRoleOut])
def list_lab_roles(db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return lab_members.list_lab_roles(db)


@router.post("/api/admin/lab-roles", response_model=schemas.LabRoleOut, status_code=201)
def create_lab_role(
    role: schemas.LabRoleCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_admin),
):
    return lab_members.create_lab_role(
        db,
        name=role.name,
        permission_level=role.permission_level,
        description=role.description,
    )
