from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..permissions import LAB_MANAGER
from ..rbac import LabAccess, LabPermission, Surface
from ..services.lab_members import LabMembers

router = APIRouter(prefix="/api/admin/lab", tags=["lab-members"])

manage = LabPermission(Surface.ADMIN, LAB_MANAGER)


@router.get("/{lab_id}/members", response_model=List[schemas.LabMemberOut])
def list_members(
    include_former: bool = Query(False, alias="includeFormer"),
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabMembers(db).list_members(access.lab_id, include_former=include_former)


@router.post("/{lab_id}/members", response_model=schemas.LabMemberAdded, status_code=201)
def add_member(
    data: schemas.LabMemberCreate,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    member, reactivated = LabMembers(db).add_member(access, data.user_id, data.lab_role_id)
    return schemas.LabMemberAdded(
        member=schemas.LabMemberOut.model_validate(member),
        is_reactivated=reactivated,
    )


@router.delete("/{lab_id}/members/by-user/{user_id}", response_model=schemas.LabMemberOut)
def remove_member(
    user_id: int,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabMembers(db).remove_member(access, user_id)


@router.put("/{lab_id}/members/{member_id}/role", response_model=schemas.LabMemberOut)
def update_member_role(
    member_id: int,
    data: schemas.LabMemberRoleUpdate,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabMembers(db).update_member_role(access, member_id, data.lab_role_id)


@router.post("/{lab_id}/members/{member_id}/induction", response_model=schemas.LabMemberOut)
def toggle_induction(
    member_id: int,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabMembers(db).toggle_induction(access, member_id)


@router.put("/{lab_id}/members/{member_id}/pci", response_model=schemas.LabMemberOut)
def set_pci(
    member_id: int,
    data: schemas.LabMemberPCIUpdate,
    access: LabAccess = Depends(manage),
    db: Session = Depends(get_db),
):
    return LabMembers(db).set_pci(access, member_id, data.is_pci)
