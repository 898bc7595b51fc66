"""Storage interface shared by the SQL, Supabase and JSON-file backends"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000


class StorageError(Exception):
    """Raised when a backend cannot complete an operation"""


def clamp_page(limit: Any, skip: Any, default_limit: int = DEFAULT_PAGE_SIZE) -> Tuple[int, int]:
    """Coerce pagination params to 1 <= limit <= 1000 and skip >= 0"""
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_limit
    try:
        skip = int(skip)
    except (TypeError, ValueError):
        skip = 0
    if limit <= 0:
        limit = default_limit
    return min(limit, MAX_PAGE_SIZE), max(0, skip)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO date or datetime filter; naive UTC result"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_end_date(value: Any) -> Optional[datetime]:
    """Like parse_datetime, but a bare date covers the whole day"""
    parsed = parse_datetime(value)
    if parsed is not None and isinstance(value, str) and len(value.strip()) == 10:
        parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999999)
    return parsed


class Storage(ABC):
    """
    One persistence backend for every record type the API owns

    Selected once at startup (see ``chatbuddy.database``). Methods are
    synchronous, return plain dicts and raise StorageError on failure.
    Widget configs are exchanged in camelCase; every other record uses the
    snake_case column names.
    """

    name = "base"

    # Widget configs

    @abstractmethod
    def get_widget_config(self, project_id: str) -> Dict[str, Any]:
        """Stored config, or the default config when none exists"""

    @abstractmethod
    def update_widget_config(self, project_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a sanitized update over the stored (or default) config"""

    # Leads

    @abstractmethod
    def create_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_leads(
        self,
        microsite: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        skip: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        ...

    # Chat sessions

    @abstractmethod
    def create_chat_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_chat_sessions(
        self,
        microsite: Optional[str] = None,
        lead_id: Optional[Any] = None,
        project_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        skip: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        ...

    # Events

    @abstractmethod
    def record_event(self, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_events(
        self,
        type: Optional[str] = None,
        project_id: Optional[str] = None,
        microsite: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def event_summary(self) -> Dict[str, Any]:
        """Totals by type and project plus the last-24h count"""

    # Dashboard users and sessions

    @abstractmethod
    def create_user(self, username: str, password_hash: str, email: Optional[str], role: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def find_user(self, username: str) -> Optional[Dict[str, Any]]:
        """User row including password_hash"""

    @abstractmethod
    def list_users(self) -> List[Dict[str, Any]]:
        """Users without password hashes"""

    @abstractmethod
    def create_session(self, user_id: Any, token: str, expires_at: datetime) -> Dict[str, Any]:
        ...

    @abstractmethod
    def find_session(self, token: str) -> Optional[Dict[str, Any]]:
        """Unexpired session joined with username and role"""

    @abstractmethod
    def delete_session(self, token: str) -> None:
        ...

    @abstractmethod
    def delete_expired_sessions(self) -> int:
        ...

    def close(self) -> None:
        """Release connections"""
