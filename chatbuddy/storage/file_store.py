"""JSON-file storage used when no database is configured (development)"""
import json
import logging
import os
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from chatbuddy.services.theme import DEFAULT_THEME, default_config
from chatbuddy.storage.base import Storage, StorageError, clamp_page, parse_datetime

logger = logging.getLogger(__name__)

WIDGET_CONFIG_FILE = "widget-config.json"
LEADS_FILE = "leads.json"
CHAT_SESSIONS_FILE = "chat-sessions.json"
EVENTS_FILE = "events.json"
USERS_FILE = "users.json"
SESSIONS_FILE = "sessions.json"


def _now() -> str:
    return datetime.utcnow().isoformat()


def _created(record: Dict[str, Any]) -> datetime:
    return parse_datetime(record.get("created_at")) or datetime.min


class FileStorage(Storage):
    """
    Every collection is one JSON document under ``data_directory``

    Writes go to a temp file that is renamed over the target, so a crash
    never leaves a half-written document. A document that fails to parse is
    copied aside as ``<name>.corrupted-<timestamp>.json`` and reset.
    """

    name = "file"

    def __init__(self, data_directory: str) -> None:
        self.data_directory = Path(data_directory).resolve()
        self._lock = threading.RLock()

    def _path(self, file_name: str) -> Path:
        return self.data_directory / file_name

    def read_json(self, file_name: str, default: Any) -> Any:
        path = self._path(file_name)
        with self._lock:
            self.data_directory.mkdir(parents=True, exist_ok=True)
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                self.write_json(file_name, default)
                return json.loads(json.dumps(default))
            except OSError as e:
                logger.error(f"Failed to read {path}: {e}")
                raise StorageError(str(e)) from e

            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse JSON file {path}: {e}")
                self._backup_corrupted(path, raw)
                self.write_json(file_name, default)
                return json.loads(json.dumps(default))

    def write_json(self, file_name: str, value: Any) -> None:
        path = self._path(file_name)
        with self._lock:
            self.data_directory.mkdir(parents=True, exist_ok=True)
            temp_path = path.with_name(f"{file_name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
            try:
                temp_path.write_text(json.dumps(value, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
                os.replace(temp_path, path)
            except OSError as e:
                logger.error(f"Failed to write {path}: {e}")
                raise StorageError(str(e)) from e

    def _backup_corrupted(self, path: Path, raw: str) -> None:
        stamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S-%f")
        backup = path.with_name(f"{path.stem}.corrupted-{stamp}{path.suffix or '.json'}")
        backup.write_text(raw, encoding="utf-8")

    def _mutate(self, file_name: str, key: str, change: Callable[[List[Dict[str, Any]]], Any]) -> Any:
        with self._lock:
            store = self.read_json(file_name, {key: []})
            records = store.setdefault(key, [])
            result = change(records)
            self.write_json(file_name, store)
            return result

    def _records(self, file_name: str, key: str) -> List[Dict[str, Any]]:
        return list(self.read_json(file_name, {key: []}).get(key, []))

    @staticmethod
    def _page(records: List[Dict[str, Any]], limit: Any, skip: Any, default_limit: int = 50):
        limit, skip = clamp_page(limit, skip, default_limit)
        ordered = sorted(records, key=_created, reverse=True)
        return ordered[skip:skip + limit], len(ordered)

    @staticmethod
    def _in_range(record, start_date, end_date) -> bool:
        created = _created(record)
        if start_date and created < start_date:
            return False
        if end_date and created > end_date:
            return False
        return True

    # Widget configs

    def get_widget_config(self, project_id: str) -> Dict[str, Any]:
        for config in self._records(WIDGET_CONFIG_FILE, "configs"):
            if config.get("projectId") == project_id:
                return {**DEFAULT_THEME, **config}
        return default_config(project_id)

    def update_widget_config(self, project_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        def change(configs):
            timestamp = _now()
            for index, config in enumerate(configs):
                if config.get("projectId") == project_id:
                    configs[index] = {**config, **update, "projectId": project_id, "updatedAt": timestamp}
                    return configs[index]
            config = {
                "id": uuid.uuid4().hex,
                "projectId": project_id,
                **DEFAULT_THEME,
                **update,
                "createdAt": timestamp,
                "updatedAt": timestamp,
            }
            configs.append(config)
            return config

        return self._mutate(WIDGET_CONFIG_FILE, "configs", change)

    # Leads

    def create_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        timestamp = _now()
        lead = {
            "id": uuid.uuid4().hex,
            "phone": data.get("phone"),
            "bhk_type": data["bhk_type"],
            "bhk": data.get("bhk"),
            "microsite": data["microsite"],
            "lead_source": data.get("lead_source") or "ChatWidget",
            "status": data.get("status") or "new",
            "metadata": data.get("metadata") or {},
            "conversation": data.get("conversation") or [],
            "location": data.get("location"),
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        self._mutate(LEADS_FILE, "leads", lambda leads: leads.append(lead))
        return lead

    def list_leads(self, microsite=None, search=None, start_date=None, end_date=None, status=None, limit=50, skip=0):
        needle = search.lower() if search else None

        def matches(lead):
            if microsite and lead.get("microsite") != microsite:
                return False
            if status and lead.get("status") != status:
                return False
            if needle:
                haystack = " ".join([
                    str(lead.get("microsite") or ""),
                    str(lead.get("phone") or ""),
                    json.dumps(lead.get("metadata") or {}, ensure_ascii=False),
                ]).lower()
                if needle not in haystack:
                    return False
            return self._in_range(lead, start_date, end_date)

        leads = [lead for lead in self._records(LEADS_FILE, "leads") if matches(lead)]
        return self._page(leads, limit, skip)

    # Chat sessions

    def create_chat_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        timestamp = _now()
        session = {
            "id": uuid.uuid4().hex,
            "microsite": data["microsite"],
            "project_id": data.get("project_id"),
            "lead_id": data.get("lead_id"),
            "phone": data.get("phone"),
            "bhk_type": data.get("bhk_type"),
            "conversation": data.get("conversation") or [],
            "metadata": data.get("metadata") or {},
            "location": data.get("location"),
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        self._mutate(CHAT_SESSIONS_FILE, "sessions", lambda sessions: sessions.append(session))
        return session

    def list_chat_sessions(self, microsite=None, lead_id=None, project_id=None, limit=50, skip=0):
        def matches(session):
            if microsite and session.get("microsite") != microsite:
                return False
            if lead_id not in (None, "") and str(session.get("lead_id")) != str(lead_id):
                return False
            if project_id and session.get("project_id") != project_id:
                return False
            return True

        sessions = [s for s in self._records(CHAT_SESSIONS_FILE, "sessions") if matches(s)]
        return self._page(sessions, limit, skip)

    # Events

    def record_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        event = {
            "id": uuid.uuid4().hex,
            "type": data["type"],
            "project_id": data.get("project_id") or "unknown",
            "microsite": data.get("microsite"),
            "payload": data.get("payload") or {},
            "location": data.get("location"),
            "created_at": _now(),
        }
        self._mutate(EVENTS_FILE, "events", lambda events: events.append(event))
        return event

    def list_events(self, type=None, project_id=None, microsite=None, start_date=None, end_date=None, limit=100, skip=0):
        def matches(event):
            if type and event.get("type") != type:
                return False
            if project_id and event.get("project_id") != project_id:
                return False
            if microsite and event.get("microsite") != microsite:
                return False
            return self._in_range(event, start_date, end_date)

        events = [e for e in self._records(EVENTS_FILE, "events") if matches(e)]
        items, _ = self._page(events, limit, skip, default_limit=100)
        return items

    def event_summary(self) -> Dict[str, Any]:
        events = self._records(EVENTS_FILE, "events")
        since = datetime.utcnow() - timedelta(hours=24)
        by_type: Dict[str, int] = {}
        by_project: Dict[str, int] = {}
        for event in events:
            by_type[event["type"]] = by_type.get(event["type"], 0) + 1
            by_project[event["project_id"]] = by_project.get(event["project_id"], 0) + 1

        def ranked(counts):
            return sorted(counts.items(), key=lambda item: item[1], reverse=True)

        return {
            "total": len(events),
            "recent24h": sum(1 for event in events if _created(event) > since),
            "byType": [{"type": key, "count": count} for key, count in ranked(by_type)],
            "byProject": [{"projectId": key, "count": count} for key, count in ranked(by_project)[:10]],
        }

    # Users and sessions

    def create_user(self, username, password_hash, email, role):
        timestamp = _now()
        user = {
            "id": uuid.uuid4().hex,
            "username": username,
            "password_hash": password_hash,
            "email": email,
            "role": role,
            "created_at": timestamp,
            "updated_at": timestamp,
        }

        def change(users):
            if any(existing["username"] == username for existing in users):
                raise StorageError(f"Username already exists: {username}")
            users.append(user)

        self._mutate(USERS_FILE, "users", change)
        return {key: value for key, value in user.items() if key != "password_hash"}

    def find_user(self, username):
        for user in self._records(USERS_FILE, "users"):
            if user["username"] == username:
                return dict(user)
        return None

    def list_users(self):
        users = sorted(self._records(USERS_FILE, "users"), key=_created, reverse=True)
        return [{key: value for key, value in user.items() if key != "password_hash"} for user in users]

    def create_session(self, user_id, token, expires_at):
        session = {
            "id": uuid.uuid4().hex,
            "user_id": user_id,
            "token": token,
            "expires_at": expires_at.isoformat(),
            "created_at": _now(),
        }
        self._mutate(SESSIONS_FILE, "sessions", lambda sessions: sessions.append(session))
        return session

    def find_session(self, token):
        now = datetime.utcnow()
        for session in self._records(SESSIONS_FILE, "sessions"):
            if session["token"] != token or parse_datetime(session["expires_at"]) <= now:
                continue
            user = next(
                (u for u in self._records(USERS_FILE, "users") if u["id"] == session["user_id"]),
                None,
            )
            if user is None:
                return None
            return {**session, "username": user["username"], "email": user.get("email"), "role": user.get("role")}
        return None

    def delete_session(self, token):
        def change(sessions):
            sessions[:] = [s for s in sessions if s["token"] != token]

        self._mutate(SESSIONS_FILE, "sessions", change)

    def delete_expired_sessions(self):
        now = datetime.utcnow()

        def change(sessions):
            before = len(sessions)
            sessions[:] = [s for s in sessions if parse_datetime(s["expires_at"]) > now]
            return before - len(sessions)

        return self._mutate(SESSIONS_FILE, "sessions", change)
