import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(Base):
    """Global role; one per user."""

    __tablename__ = "roles"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    permission_level = Column(Integer, nullable=False, default=0)

    users = relationship("User", back_populates="role")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    first_name = Column(String)
    last_name = Column(String)
    display_name = Column(String)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    role = relationship("Role", back_populates="users")
    lab_memberships = relationship("LabMember", back_populates="user")


class Lab(Base):
    __tablename__ = "labs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    members = relationship("LabMember", back_populates="lab")
    inventory_items = relationship("LabInventoryItem", back_populates="lab")


class LabRole(Base):
    __tablename__ = "lab_roles"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text)
    permission_level = Column(Integer, nullable=False, default=0)
    # purpose: flag the reserved tombstone role; only seeding sets this
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        sa.CheckConstraint(
            "permission_level >= -1 AND permission_level <= 100",
            name="ck_lab_roles_permission_level",
        ),
    )


class LabMember(Base):
    __tablename__ = "lab_members"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    lab_id = Column(Integer, ForeignKey("labs.id", ondelete="CASCADE"), nullable=False)
    lab_role_id = Column(Integer, ForeignKey("lab_roles.id"), nullable=False)
    induction_done = Column(Boolean, nullable=False, default=False)
    is_pci = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="lab_memberships")
    lab = relationship("Lab", back_populates="members")
    lab_role = relationship("LabRole")
    inventory_logs = relationship("InventoryLog", back_populates="member")

    __table_args__ = (sa.UniqueConstraint("user_id", "lab_id", name="uq_lab_members_user_lab"),)

    @property
    def is_former(self) -> bool:
        return self.lab_role is not None and bool(self.lab_role.is_system)


class LabAdmission(Base):
    """A user's request to join a lab with a given lab role."""

    __tablename__ = "lab_admissions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lab_id = Column(Integer, ForeignKey("labs.id", ondelete="CASCADE"), nullable=False, index=True)
    lab_role_id = Column(Integer, ForeignKey("lab_roles.id"), nullable=False)
    # PENDING, APPROVED, REJECTED or WITHDRAWN
    status = Column(String, nullable=False, default="PENDING", index=True)
    is_pci = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User")
    lab = relationship("Lab")
    lab_role = relationship("LabRole")


class Item(Base):
    """Global catalog entry shared across labs."""

    __tablename__ = "items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    safety_info = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    lab_instances = relationship("LabInventoryItem", back_populates="item")


class ItemTag(Base):
    __tablename__ = "item_tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text)
    color = Column(String)


class LabInventoryItem(Base):
    __tablename__ = "lab_inventory_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    lab_id = Column(Integer, ForeignKey("labs.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    location = Column(String, nullable=False)
    item_unit = Column(String, nullable=False)
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    lab = relationship("Lab", back_populates="inventory_items")
    item = relationship("Item", back_populates="lab_instances")
    tag_links = relationship(
        "LabItemTag",
        back_populates="inventory_item",
        cascade="all, delete-orphan",
    )
    # no delete cascade: the ORM nulls log references when the item goes away
    inventory_logs = relationship("InventoryLog", back_populates="lab_inventory_item")

    __table_args__ = (sa.UniqueConstraint("lab_id", "item_id", name="uq_lab_inventory_lab_item"),)

    @property
    def tags(self) -> list["ItemTag"]:
        return [link.item_tag for link in self.tag_links]


class LabItemTag(Base):
    __tablename__ = "lab_item_tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    inventory_item_id = Column(
        Integer,
        ForeignKey("lab_inventory_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_tag_id = Column(Integer, ForeignKey("item_tags.id", ondelete="CASCADE"), nullable=False)

    inventory_item = relationship("LabInventoryItem", back_populates="tag_links")
    item_tag = relationship("ItemTag")

    __table_args__ = (
        sa.UniqueConstraint("inventory_item_id", "item_tag_id", name="uq_lab_item_tags_pair"),
    )


class InventoryLog(Base):
    """Append-only record of one inventory mutation."""

    __tablename__ = "inventory_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    lab_inventory_item_id = Column(
        Integer,
        ForeignKey("lab_inventory_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    member_id = Column(Integer, ForeignKey("lab_members.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String, nullable=False, index=True)
    source = Column(String, nullable=False, index=True)
    previous_values = Column(JSON)
    new_values = Column(JSON)
    quantity_changed = Column(Integer)
    reason = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    lab_inventory_item = relationship("LabInventoryItem", back_populates="inventory_logs")
    user = relationship("User")
    member = relationship("LabMember", back_populates="inventory_logs")
