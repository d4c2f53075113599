import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

PRIORITIES = ("Alta", "Média", "Baixa")


def _uuid() -> str:
    return str(uuid.uuid4())


class JobTitle(Base):
    __tablename__ = "job_titles"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Origin(Base):
    __tablename__ = "origins"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class DemandType(Base):
    __tablename__ = "demand_types"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Status(Base):
    __tablename__ = "statuses"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    color = Column(String, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    kind = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default="visualizador")
    permission_level = Column(Integer, nullable=False, default=1)
    job_title_id = Column(String, ForeignKey("job_titles.id"), nullable=True)
    origin = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    job_title = relationship("JobTitle", lazy="joined")


class Demand(Base):
    __tablename__ = "demands"

    id = Column(String, primary_key=True, default=_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)
    reference_link = Column(String, nullable=True)
    drive_link = Column(String, nullable=True)
    priority = Column(String, nullable=False, default="Média")
    status_id = Column(String, ForeignKey("statuses.id"), nullable=True)
    type_id = Column(String, ForeignKey("demand_types.id"), nullable=True)
    origin_id = Column(String, ForeignKey("origins.id"), nullable=True)
    responsible_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    created_by = Column(String, ForeignKey("profiles.id"), nullable=True)
    deadline = Column(Date, nullable=True)
    production_started_at = Column(DateTime, nullable=True)
    accumulated_time = Column(Integer, nullable=False, default=0)
    finished_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    status = relationship("Status", lazy="joined")
    demand_type = relationship("DemandType", lazy="joined")
    origin = relationship("Origin", lazy="joined")
    responsible = relationship("Profile", foreign_keys=[responsible_id], lazy="joined")
    comments = relationship("Comment", back_populates="demand", cascade="all, delete-orphan")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=_uuid)
    demand_id = Column(String, ForeignKey("demands.id"), nullable=False)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    user_name = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    mentions = Column(JSON, nullable=False, default=list)
    parent_comment_id = Column(String, ForeignKey("comments.id"), nullable=True)
    is_edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    demand = relationship("Demand", back_populates="comments")


class LogEntry(Base):
    __tablename__ = "logs"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    table_name = Column(String, nullable=False)
    record_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "resource", name="uq_role_resource"),)

    id = Column(String, primary_key=True, default=_uuid)
    role = Column(String, nullable=False)
    resource = Column(String, nullable=False)
    can_view = Column(Boolean, nullable=False, default=False)
    can_manage = Column(Boolean, nullable=False, default=False)
    can_delete = Column(Boolean, nullable=False, default=False)


class AppSetting(Base):
    __tablename__ = "app_settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
