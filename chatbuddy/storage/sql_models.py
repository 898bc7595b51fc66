from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    email = Column(String(255))
    role = Column(String(50), default="user")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DashboardSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"))
    token = Column(String(255), unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20))
    bhk_type = Column(String(50), nullable=False)
    bhk = Column(Integer)
    microsite = Column(String(255), nullable=False)
    lead_source = Column(String(100), default="ChatWidget")
    status = Column(String(50), default="new")
    metadata_ = Column("metadata", JSON, default=dict)
    conversation = Column(JSON, default=list)
    location = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_leads_phone_microsite", "phone", "microsite"),
        Index("idx_leads_created_at", "created_at"),
    )


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    microsite = Column(String(255), nullable=False, index=True)
    project_id = Column(String(255), index=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="SET NULL"), index=True)
    phone = Column(String(20))
    bhk_type = Column(String(50))
    conversation = Column(JSON, default=list)
    metadata_ = Column("metadata", JSON, default=dict)
    location = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(100), nullable=False, index=True)
    project_id = Column(String(255), nullable=False, index=True)
    microsite = Column(String(255), index=True)
    payload = Column(JSON, default=dict)
    location = Column(JSON)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class WidgetConfig(Base):
    __tablename__ = "widget_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(255), unique=True, nullable=False)
    agent_name = Column(String(255))
    avatar_url = Column(String(500))
    primary_color = Column(String(20))
    followup_message = Column(Text)
    bhk_prompt = Column(Text)
    inventory_message = Column(Text)
    phone_prompt = Column(Text)
    thank_you_message = Column(Text)
    bubble_position = Column(String(20))
    auto_open_delay_ms = Column(Integer)
    welcome_message = Column(Text)
    property_info = Column(JSON, default=dict)
    created_by = Column(String(255))
    updated_by = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
