"""
healthsync/services/session_service.py

Purpose: Durable record of who is signed in

- Three identity slots (user, admin, receptionist) plus the bearer token
- Shape check on load; malformed slots are deleted, never trusted
- Single writer: save / clear / mark_location_captured
- Pluggable key/value storage (memory, JSON file, MongoDB)
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from healthsync.core.config import settings
from healthsync.core.logging import get_logger, LogContext
from healthsync.db.mongo import get_storage_collection
from healthsync.schemas.auth import LoggedIn, LoggedOut, Role, Session, has_identity_shape

logger = get_logger(__name__)

TOKEN_KEY = "token"
# Load precedence when more than one slot survives the shape check
SLOT_ORDER = (Role.PATIENT, Role.ADMIN, Role.RECEPTIONIST)


# ============================================================
# STORAGE BACKENDS
# ============================================================

class SessionStorage(ABC):
    """String key/value storage scoped to one client."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set_item(self, key: str, value: str):
        ...

    @abstractmethod
    async def remove_item(self, key: str):
        ...


class MemoryStorage(SessionStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    async def set_item(self, key: str, value: str):
        self.items[key] = value

    async def remove_item(self, key: str):
        self.items.pop(key, None)


class JsonFileStorage(SessionStorage):
    """
    One JSON object per client on disk. An unreadable file is treated as empty.
    """

    def __init__(self, directory: str, namespace: str):
        self.path = Path(directory) / f"{namespace}.json"

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path.name}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        tmp_path.replace(self.path)

    async def get_item(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    async def set_item(self, key: str, value: str):
        data = self._read()
        data[key] = value
        self._write(data)

    async def remove_item(self, key: str):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class MongoStorage(SessionStorage):
    """
    Items stored as {namespace, key, value} documents in the client_storage collection.
    """

    def __init__(self, namespace: str, collection=None):
        self.namespace = namespace
        self._collection = collection

    @property
    def collection(self):
        if self._collection is None:
            self._collection = get_storage_collection()
        return self._collection

    async def get_item(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"namespace": self.namespace, "key": key})
        return doc.get("value") if doc else None

    async def set_item(self, key: str, value: str):
        await self.collection.update_one(
            {"namespace": self.namespace, "key": key},
            {"$set": {"value": value}},
            upsert=True
        )

    async def remove_item(self, key: str):
        await self.collection.delete_one({"namespace": self.namespace, "key": key})


def create_storage(namespace: str) -> SessionStorage:
    """Builds the storage backend selected by SESSION_STORAGE_BACKEND."""
    backend = settings.SESSION_STORAGE_BACKEND
    if backend == "file":
        return JsonFileStorage(settings.SESSION_STORAGE_PATH or ".sessions", namespace)
    if backend == "mongo":
        return MongoStorage(namespace)
    return MemoryStorage()


# ============================================================
# SESSION STORE
# ============================================================

class SessionStore:
    """
    Single source of truth for the signed-in identity of one client.

    The rest of the application only reads `session`, `identity`, `role`,
    `token` and `is_ready`.
    """

    def __init__(self, storage: SessionStorage):
        self._storage = storage
        self._session: Session = LoggedOut()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def token(self) -> Optional[str]:
        return self._session.token if isinstance(self._session, LoggedIn) else None

    @property
    def role(self) -> Optional[Role]:
        return self._session.role if isinstance(self._session, LoggedIn) else None

    @property
    def identity(self) -> Optional[Dict[str, Any]]:
        return dict(self._session.identity) if isinstance(self._session, LoggedIn) else None

    @property
    def is_ready(self) -> bool:
        return isinstance(self._session, LoggedIn) and self._session.is_ready

    async def _read_slot(self, role: Role) -> Optional[Dict[str, Any]]:
        raw = await self._storage.get_item(role.value)
        if not raw:
            return None
        try:
            blob = json.loads(raw)
        except ValueError:
            blob = None
        if not has_identity_shape(blob):
            logger.warning(f"Discarding malformed '{role.value}' slot")
            await self._storage.remove_item(role.value)
            return None
        return blob

    async def load(self) -> Session:
        """
        Reads the persisted slots. Malformed slots are deleted; if more than
        one valid slot exists, the first in SLOT_ORDER wins and the rest are
        deleted.
        """
        found = None
        for role in SLOT_ORDER:
            blob = await self._read_slot(role)
            if blob is None:
                continue
            if found is None:
                found = (role, blob)
            else:
                logger.warning(f"Dropping extra '{role.value}' slot, '{found[0].value}' already signed in")
                await self._storage.remove_item(role.value)

        if found is None:
            self._session = LoggedOut()
            return self._session

        role, blob = found
        token = await self._storage.get_item(TOKEN_KEY)
        self._session = LoggedIn(
            role=role,
            identity=blob,
            token=token or None,
            location_captured=bool(blob.get("locationCaptured", False)),
        )
        with LogContext(user_id=self._session.user_id, role=role.value):
            logger.info("Session restored")
        return self._session

    async def save(self, identity: Dict[str, Any], role: Role, token: Optional[str] = None,
                   location_captured: Optional[bool] = None) -> LoggedIn:
        """
        Persists an identity into its role's slot and deletes the other two
        (last write wins). The token is stored, or deleted when absent.
        """
        if not has_identity_shape(identity):
            raise ValueError("identity must contain name and email")

        captured = bool(identity.get("locationCaptured", False)) if location_captured is None else location_captured
        blob = {**identity, "locationCaptured": captured}

        try:
            await self._storage.set_item(role.value, json.dumps(blob, default=str))
            for other in SLOT_ORDER:
                if other is not role:
                    await self._storage.remove_item(other.value)
            if token:
                await self._storage.set_item(TOKEN_KEY, token)
            else:
                await self._storage.remove_item(TOKEN_KEY)
        except Exception:
            logger.error("Session write failed, rolling back", exc_info=True)
            await self.clear()
            raise

        self._session = LoggedIn(role=role, identity=blob, token=token, location_captured=captured)
        with LogContext(user_id=self._session.user_id, role=role.value):
            logger.info("Session saved")
        return self._session

    async def mark_location_captured(self) -> LoggedIn:
        """Flips locationCaptured on the current identity. Only location onboarding calls this."""
        session = self._session
        if not isinstance(session, LoggedIn):
            raise RuntimeError("No signed-in identity to update")
        if session.location_captured:
            return session

        blob = {**session.identity, "locationCaptured": True}
        await self._storage.set_item(session.role.value, json.dumps(blob, default=str))
        self._session = LoggedIn(role=session.role, identity=blob, token=session.token, location_captured=True)
        with LogContext(user_id=self._session.user_id):
            logger.info("Location marked as captured")
        return self._session

    async def clear(self):
        """Deletes every identity slot and the token (logout)."""
        self._session = LoggedOut()
        for role in SLOT_ORDER:
            await self._storage.remove_item(role.value)
        await self._storage.remove_item(TOKEN_KEY)
        logger.info("Session cleared")
