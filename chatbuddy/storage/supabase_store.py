"""Supabase (hosted Postgres) storage"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from supabase import create_client, Client

from chatbuddy.services.theme import DEFAULT_THEME, FIELD_ALIASES, default_config
from chatbuddy.storage.base import Storage, StorageError, clamp_page
from chatbuddy.utils.retry import retry_query

logger = logging.getLogger(__name__)


def _config_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    config = {}
    for camel, snake in FIELD_ALIASES.items():
        if camel in ("createdBy", "updatedBy"):
            continue
        value = row.get(snake)
        if value is None and camel in DEFAULT_THEME:
            value = DEFAULT_THEME[camel]
        config[camel] = value
    config["propertyInfo"] = row.get("property_info") or {}
    return config


def _without_hash(user: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in user.items() if key != "password_hash"}


class SupabaseStorage(Storage):
    """Storage over the Supabase PostgREST API using the service role key"""

    name = "supabase"

    def __init__(self, url: str, service_role_key: str, client: Optional[Client] = None) -> None:
        # Service role client (bypasses RLS)
        self.client: Client = client or create_client(url, service_role_key)

    def _run(self, query_func, action: str):
        try:
            return retry_query(query_func)
        except Exception as e:
            logger.error(f"Supabase {action} failed: {e}")
            raise StorageError(str(e)) from e

    def _insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        result = self._run(lambda: self.client.table(table).insert(row).execute(), f"insert into {table}")
        if not result.data:
            raise StorageError(f"Insert into {table} returned no row")
        return result.data[0]

    # Widget configs

    def get_widget_config(self, project_id: str) -> Dict[str, Any]:
        result = self._run(
            lambda: self.client.table("widget_configs").select("*").eq("project_id", project_id).limit(1).execute(),
            "widget config read",
        )
        if not result.data:
            return default_config(project_id)
        return _config_from_row(result.data[0])

    def update_widget_config(self, project_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        current = self.get_widget_config(project_id)
        merged = {**current, **update, "projectId": project_id}
        row = {FIELD_ALIASES[camel]: value for camel, value in merged.items() if camel in FIELD_ALIASES}
        row["updated_at"] = datetime.utcnow().isoformat()
        result = self._run(
            lambda: self.client.table("widget_configs").upsert(row, on_conflict="project_id").execute(),
            "widget config upsert",
        )
        return _config_from_row(result.data[0] if result.data else row)

    # Leads

    def create_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("leads", {
            "phone": data.get("phone"),
            "bhk_type": data["bhk_type"],
            "bhk": data.get("bhk"),
            "microsite": data["microsite"],
            "lead_source": data.get("lead_source") or "ChatWidget",
            "status": data.get("status") or "new",
            "metadata": data.get("metadata") or {},
            "conversation": data.get("conversation") or [],
            "location": data.get("location"),
        })

    def list_leads(self, microsite=None, search=None, start_date=None, end_date=None, status=None, limit=50, skip=0):
        limit, skip = clamp_page(limit, skip)

        def query():
            q = self.client.table("leads").select("*", count="exact")
            if microsite:
                q = q.eq("microsite", microsite)
            if status:
                q = q.eq("status", status)
            if search:
                term = search.replace(",", " ")
                q = q.or_(f"microsite.ilike.%{term}%,phone.ilike.%{term}%")
            if start_date:
                q = q.gte("created_at", start_date.isoformat())
            if end_date:
                q = q.lte("created_at", end_date.isoformat())
            return q.order("created_at", desc=True).range(skip, skip + limit - 1).execute()

        result = self._run(query, "lead list")
        items = result.data or []
        return items, result.count if result.count is not None else len(items)

    # Chat sessions

    def create_chat_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("chat_sessions", {
            "microsite": data["microsite"],
            "project_id": data.get("project_id"),
            "lead_id": data.get("lead_id"),
            "phone": data.get("phone"),
            "bhk_type": data.get("bhk_type"),
            "conversation": data.get("conversation") or [],
            "metadata": data.get("metadata") or {},
            "location": data.get("location"),
        })

    def list_chat_sessions(self, microsite=None, lead_id=None, project_id=None, limit=50, skip=0):
        limit, skip = clamp_page(limit, skip)

        def query():
            q = self.client.table("chat_sessions").select("*", count="exact")
            if microsite:
                q = q.eq("microsite", microsite)
            if lead_id not in (None, ""):
                q = q.eq("lead_id", lead_id)
            if project_id:
                q = q.eq("project_id", project_id)
            return q.order("created_at", desc=True).range(skip, skip + limit - 1).execute()

        result = self._run(query, "chat session list")
        items = result.data or []
        return items, result.count if result.count is not None else len(items)

    # Events

    def record_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("events", {
            "type": data["type"],
            "project_id": data.get("project_id") or "unknown",
            "microsite": data.get("microsite"),
            "payload": data.get("payload") or {},
            "location": data.get("location"),
        })

    def list_events(self, type=None, project_id=None, microsite=None, start_date=None, end_date=None, limit=100, skip=0):
        limit, skip = clamp_page(limit, skip, default_limit=100)

        def query():
            q = self.client.table("events").select("*")
            if type:
                q = q.eq("type", type)
            if project_id:
                q = q.eq("project_id", project_id)
            if microsite:
                q = q.eq("microsite", microsite)
            if start_date:
                q = q.gte("created_at", start_date.isoformat())
            if end_date:
                q = q.lte("created_at", end_date.isoformat())
            return q.order("created_at", desc=True).range(skip, skip + limit - 1).execute()

        return self._run(query, "event list").data or []

    def event_summary(self) -> Dict[str, Any]:
        since = (datetime.utcnow() - timedelta(hours=24)).isoformat()
        rows = self._run(
            lambda: self.client.table("events").select("type,project_id,created_at").execute(),
            "event summary",
        ).data or []

        by_type: Dict[str, int] = {}
        by_project: Dict[str, int] = {}
        recent = 0
        for row in rows:
            by_type[row["type"]] = by_type.get(row["type"], 0) + 1
            by_project[row["project_id"]] = by_project.get(row["project_id"], 0) + 1
            if (row.get("created_at") or "") > since:
                recent += 1

        def ranked(counts):
            return sorted(counts.items(), key=lambda item: item[1], reverse=True)

        return {
            "total": len(rows),
            "recent24h": recent,
            "byType": [{"type": key, "count": count} for key, count in ranked(by_type)],
            "byProject": [{"projectId": key, "count": count} for key, count in ranked(by_project)[:10]],
        }

    # Users and sessions

    def create_user(self, username, password_hash, email, role):
        return _without_hash(self._insert("users", {
            "username": username,
            "password_hash": password_hash,
            "email": email,
            "role": role,
        }))

    def find_user(self, username):
        result = self._run(
            lambda: self.client.table("users").select("*").eq("username", username).limit(1).execute(),
            "user lookup",
        )
        return result.data[0] if result.data else None

    def list_users(self) -> List[Dict[str, Any]]:
        result = self._run(
            lambda: self.client.table("users").select("id,username,email,role,created_at,updated_at")
            .order("created_at", desc=True).execute(),
            "user list",
        )
        return result.data or []

    def create_session(self, user_id, token, expires_at):
        return self._insert("sessions", {
            "user_id": user_id,
            "token": token,
            "expires_at": expires_at.isoformat(),
        })

    def find_session(self, token):
        now = datetime.utcnow().isoformat()
        result = self._run(
            lambda: self.client.table("sessions").select("*, users(username, email, role)")
            .eq("token", token).gt("expires_at", now).limit(1).execute(),
            "session lookup",
        )
        if not result.data:
            return None
        session = dict(result.data[0])
        user = session.pop("users", None) or {}
        if not user:
            return None
        session.update({"username": user.get("username"), "email": user.get("email"), "role": user.get("role")})
        return session

    def delete_session(self, token):
        self._run(lambda: self.client.table("sessions").delete().eq("token", token).execute(), "session delete")

    def delete_expired_sessions(self) -> int:
        now = datetime.utcnow().isoformat()
        result = self._run(
            lambda: self.client.table("sessions").delete().lt("expires_at", now).execute(),
            "expired session purge",
        )
        return len(result.data or [])
