"""SQLAlchemy storage (MySQL in production, SQLite in tests)"""
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional, Tuple
import logging

from sqlalchemy import String, cast, create_engine, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession, sessionmaker

from chatbuddy.services.theme import DEFAULT_THEME, FIELD_ALIASES, default_config
from chatbuddy.storage.base import Storage, StorageError, clamp_page
from chatbuddy.storage.sql_models import (
    Base,
    ChatSession,
    DashboardSession,
    Event,
    Lead,
    User,
    WidgetConfig,
)

logger = logging.getLogger(__name__)


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _to_dict(row: Any) -> Dict[str, Any]:
    data = {}
    for column in row.__table__.columns:
        attribute = "metadata_" if column.name == "metadata" else column.name
        data[column.name] = _iso(getattr(row, attribute))
    return data


def _config_to_dict(row: WidgetConfig) -> Dict[str, Any]:
    config = {}
    for camel, snake in FIELD_ALIASES.items():
        if camel in ("createdBy", "updatedBy"):
            continue
        value = getattr(row, snake)
        if value is None and camel in DEFAULT_THEME:
            value = DEFAULT_THEME[camel]
        config[camel] = value
    config["propertyInfo"] = row.property_info or {}
    return config


class SqlStorage(Storage):
    """Relational store shared by every API router"""

    name = "sql"

    def __init__(self, url: str, create_schema: bool = True) -> None:
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.url = url
        self.engine = create_engine(
            url,
            connect_args=connect_args,
            pool_pre_ping=True,
            future=True,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            future=True,
            expire_on_commit=False,
        )
        if create_schema:
            Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Generator[DbSession, None, None]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"SQL storage error: {e}")
            raise StorageError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    # Widget configs

    def get_widget_config(self, project_id: str) -> Dict[str, Any]:
        with self.transaction() as session:
            row = session.scalars(
                select(WidgetConfig).where(WidgetConfig.project_id == project_id)
            ).first()
            if row is None:
                return default_config(project_id)
            return _config_to_dict(row)

    def update_widget_config(self, project_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        with self.transaction() as session:
            row = session.scalars(
                select(WidgetConfig).where(WidgetConfig.project_id == project_id)
            ).first()
            if row is None:
                row = WidgetConfig(project_id=project_id)
                for camel, value in DEFAULT_THEME.items():
                    setattr(row, FIELD_ALIASES[camel], value)
                row.property_info = {}
                session.add(row)

            for camel, value in update.items():
                column = FIELD_ALIASES.get(camel)
                if column and column != "project_id":
                    setattr(row, column, value)
            session.flush()
            return _config_to_dict(row)

    # Leads

    def create_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.transaction() as session:
            lead = Lead(
                phone=data.get("phone"),
                bhk_type=data["bhk_type"],
                bhk=data.get("bhk"),
                microsite=data["microsite"],
                lead_source=data.get("lead_source") or "ChatWidget",
                status=data.get("status") or "new",
                metadata_=data.get("metadata") or {},
                conversation=data.get("conversation") or [],
                location=data.get("location"),
            )
            session.add(lead)
            session.flush()
            return _to_dict(lead)

    def list_leads(
        self,
        microsite=None,
        search=None,
        start_date=None,
        end_date=None,
        status=None,
        limit=50,
        skip=0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        conditions = []
        if microsite:
            conditions.append(Lead.microsite == microsite)
        if search:
            term = f"%{search}%"
            conditions.append(
                or_(
                    Lead.microsite.like(term),
                    Lead.phone.like(term),
                    cast(Lead.metadata_, String).like(term),
                )
            )
        if start_date:
            conditions.append(Lead.created_at >= start_date)
        if end_date:
            conditions.append(Lead.created_at <= end_date)
        if status:
            conditions.append(Lead.status == status)

        limit, skip = clamp_page(limit, skip)
        with self.transaction() as session:
            total = session.scalar(select(func.count(Lead.id)).where(*conditions))
            rows = session.scalars(
                select(Lead)
                .where(*conditions)
                .order_by(Lead.created_at.desc(), Lead.id.desc())
                .limit(limit)
                .offset(skip)
            ).all()
            return [_to_dict(row) for row in rows], int(total or 0)

    # Chat sessions

    def create_chat_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        lead_id = data.get("lead_id")
        with self.transaction() as session:
            chat = ChatSession(
                microsite=data["microsite"],
                project_id=data.get("project_id"),
                lead_id=int(lead_id) if lead_id is not None else None,
                phone=data.get("phone"),
                bhk_type=data.get("bhk_type"),
                conversation=data.get("conversation") or [],
                metadata_=data.get("metadata") or {},
                location=data.get("location"),
            )
            session.add(chat)
            session.flush()
            return _to_dict(chat)

    def list_chat_sessions(self, microsite=None, lead_id=None, project_id=None, limit=50, skip=0):
        conditions = []
        if microsite:
            conditions.append(ChatSession.microsite == microsite)
        if lead_id not in (None, ""):
            try:
                conditions.append(ChatSession.lead_id == int(lead_id))
            except (TypeError, ValueError):
                return [], 0
        if project_id:
            conditions.append(ChatSession.project_id == project_id)

        limit, skip = clamp_page(limit, skip)
        with self.transaction() as session:
            total = session.scalar(select(func.count(ChatSession.id)).where(*conditions))
            rows = session.scalars(
                select(ChatSession)
                .where(*conditions)
                .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
                .limit(limit)
                .offset(skip)
            ).all()
            return [_to_dict(row) for row in rows], int(total or 0)

    # Events

    def record_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.transaction() as session:
            event = Event(
                type=data["type"],
                project_id=data.get("project_id") or "unknown",
                microsite=data.get("microsite"),
                payload=data.get("payload") or {},
                location=data.get("location"),
            )
            session.add(event)
            session.flush()
            return _to_dict(event)

    def list_events(self, type=None, project_id=None, microsite=None, start_date=None, end_date=None, limit=100, skip=0):
        conditions = []
        if type:
            conditions.append(Event.type == type)
        if project_id:
            conditions.append(Event.project_id == project_id)
        if microsite:
            conditions.append(Event.microsite == microsite)
        if start_date:
            conditions.append(Event.created_at >= start_date)
        if end_date:
            conditions.append(Event.created_at <= end_date)

        limit, skip = clamp_page(limit, skip, default_limit=100)
        with self.transaction() as session:
            rows = session.scalars(
                select(Event)
                .where(*conditions)
                .order_by(Event.created_at.desc(), Event.id.desc())
                .limit(limit)
                .offset(skip)
            ).all()
            return [_to_dict(row) for row in rows]

    def event_summary(self) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(hours=24)
        with self.transaction() as session:
            total = session.scalar(select(func.count(Event.id))) or 0
            recent = session.scalar(select(func.count(Event.id)).where(Event.created_at > since)) or 0
            count = func.count(Event.id).label("count")
            by_type = session.execute(
                select(Event.type, count).group_by(Event.type).order_by(count.desc())
            ).all()
            by_project = session.execute(
                select(Event.project_id, count).group_by(Event.project_id).order_by(count.desc()).limit(10)
            ).all()

        return {
            "total": int(total),
            "recent24h": int(recent),
            "byType": [{"type": row[0], "count": int(row[1])} for row in by_type],
            "byProject": [{"projectId": row[0], "count": int(row[1])} for row in by_project],
        }

    # Users and sessions

    def create_user(self, username, password_hash, email, role):
        with self.transaction() as session:
            user = User(username=username, password_hash=password_hash, email=email, role=role)
            session.add(user)
            session.flush()
            data = _to_dict(user)
            data.pop("password_hash", None)
            return data

    def find_user(self, username):
        with self.transaction() as session:
            user = session.scalars(select(User).where(User.username == username)).first()
            return _to_dict(user) if user else None

    def list_users(self):
        with self.transaction() as session:
            users = session.scalars(select(User).order_by(User.created_at.desc())).all()
            result = []
            for user in users:
                data = _to_dict(user)
                data.pop("password_hash", None)
                result.append(data)
            return result

    def create_session(self, user_id, token, expires_at):
        with self.transaction() as session:
            record = DashboardSession(user_id=user_id, token=token, expires_at=expires_at)
            session.add(record)
            session.flush()
            return _to_dict(record)

    def find_session(self, token):
        with self.transaction() as session:
            row = session.execute(
                select(DashboardSession, User.username, User.email, User.role)
                .join(User, DashboardSession.user_id == User.id)
                .where(DashboardSession.token == token)
                .where(DashboardSession.expires_at > datetime.utcnow())
            ).first()
            if row is None:
                return None
            record, username, email, role = row
            data = _to_dict(record)
            data.update({"username": username, "email": email, "role": role})
            return data

    def delete_session(self, token):
        with self.transaction() as session:
            session.execute(delete(DashboardSession).where(DashboardSession.token == token))

    def delete_expired_sessions(self):
        with self.transaction() as session:
            result = session.execute(
                delete(DashboardSession).where(DashboardSession.expires_at < datetime.utcnow())
            )
            return result.rowcount or 0
