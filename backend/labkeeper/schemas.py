"""Pydantic request and response models for the HTTP surface."""

# purpose: camelCase API contracts for auth, reference data, lab inventory, members and logs
# status: active

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# auth


class UserCreate(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(CamelModel):
    id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    role_id: int


# reference data


class LabCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class LabOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class LabRoleCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    permission_level: int


class LabRoleOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    permission_level: int
    is_system: bool = False


class ItemCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    safety_info: Optional[str] = None


class ItemOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    safety_info: Optional[str] = None


class TagCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None


class TagOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None


# lab inventory


class LabInventoryItemCreate(CamelModel):
    item_id: int
    location: str
    item_unit: str
    current_stock: int = 0
    min_stock: int = 0
    tag_ids: List[int] = Field(default_factory=list)
    reason: Optional[str] = None


class LabInventoryItemUpdate(CamelModel):
    location: Optional[str] = None
    item_unit: Optional[str] = None
    current_stock: Optional[int] = None
    min_stock: Optional[int] = None
    reason: Optional[str] = None


class LabInventoryItemOut(CamelModel):
    id: int
    lab_id: int
    item_id: int
    location: str
    item_unit: str
    current_stock: int
    min_stock: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    item: ItemOut
    tags: List[TagOut] = Field(default_factory=list)


class TagAssignment(CamelModel):
    tag_ids: List[int]


class StockMovement(CamelModel):
    amount: int = Field(gt=0)
    reason: Optional[str] = None


class RemovedItemOut(CamelModel):
    message: str
    item: Dict[str, Any]


class ImportRowError(CamelModel):
    row: int
    detail: str


class ImportResultOut(CamelModel):
    created: List[LabInventoryItemOut]
    errors: List[ImportRowError]


# inventory logs


class LogUserOut(CamelModel):
    id: int
    display_name: Optional[str] = None


class LogMemberOut(CamelModel):
    id: int
    user_id: int


class LogCatalogItemOut(CamelModel):
    id: int
    name: str


class LogInventoryItemOut(CamelModel):
    id: int
    item_id: int
    item: Optional[LogCatalogItemOut] = None


class InventoryLogOut(CamelModel):
    id: int
    action: str
    source: str
    previous_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    quantity_changed: Optional[int] = None
    reason: Optional[str] = None
    created_at: datetime
    user_id: Optional[int] = None
    member_id: Optional[int] = None
    lab_inventory_item_id: Optional[int] = None
    user: Optional[LogUserOut] = None
    member: Optional[LogMemberOut] = None
    lab_inventory_item: Optional[LogInventoryItemOut] = None


class LogPageOut(CamelModel):
    logs: List[InventoryLogOut]
    total_count: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_prev_page: bool


# lab members


class LabMemberCreate(CamelModel):
    user_id: int
    lab_role_id: int


class LabMemberRoleUpdate(CamelModel):
    lab_role_id: int


class LabMemberPCIUpdate(CamelModel):
    is_pci: bool


class LabMemberOut(CamelModel):
    id: int
    user_id: int
    lab_id: int
    lab_role_id: int
    induction_done: bool
    is_pci: bool
    is_former: bool
    lab_role: LabRoleOut
    user: Optional[UserOut] = None


class LabMemberAdded(CamelModel):
    member: LabMemberOut
    is_reactivated: bool


# admissions


class LabAdmissionCreate(CamelModel):
    lab_role_id: int


class LabAdmissionDecision(CamelModel):
    lab_role_id: Optional[int] = None
    is_pci: bool = False


class LabAdmissionOut(CamelModel):
    id: int
    lab_id: int
    user_id: int
    lab_role_id: int
    status: str
    is_pci: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lab_role: LabRoleOut
    user: Optional[UserOut] = None


class LabAdmissionApproved(CamelModel):
    admission: LabAdmissionOut
    member: LabMemberOut
    is_reactivated: bool
