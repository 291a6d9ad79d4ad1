"""
Server-side sessions keyed by an opaque cookie token.

The cookie carries only a random token; the store keeps the sha256 of it
mapped to the serialized identity {id, username, name} and an expiry.
Two backends: in-process memory (lost on restart) and the `sessions` table.
"""
import hashlib, json, logging, secrets, threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from fastapi import Response
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from drive.auth.models import SessionRecord
from drive.auth.schemas import Identity
from drive.shared.config import settings
from drive.shared.db import SessionLocal
from drive.shared.errors import StoreError

logger = logging.getLogger(__name__)

def serialize(identity: Identity) -> dict:
    return {"id": identity.id, "username": identity.username, "name": identity.name}

def _hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _aware(ts: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class SessionManager:
    """Token minting and identity (de)serialization; storage is up to subclasses."""

    def __init__(self, ttl_minutes: int):
        self.ttl = timedelta(minutes=ttl_minutes)

    def create(self, identity: Identity) -> str:
        token = secrets.token_urlsafe(32)
        self._save(_hash(token), serialize(identity), _now() + self.ttl)
        return token

    def resolve(self, token: Optional[str]) -> Optional[Identity]:
        """Identity for the token, or None when unknown or expired. StoreError if the backend is down."""
        if not token:
            return None
        data = self._load(_hash(token))
        if not data:
            return None
        return Identity(**data)

    def destroy(self, token: Optional[str]) -> None:
        if token:
            self._drop(_hash(token))

    def _save(self, key: str, data: dict, expires_at: datetime) -> None:
        raise NotImplementedError

    def _load(self, key: str) -> Optional[dict]:
        raise NotImplementedError

    def _drop(self, key: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        """Drop every expired session, return how many went."""
        raise NotImplementedError


class MemorySessionManager(SessionManager):
    def __init__(self, ttl_minutes: int):
        super().__init__(ttl_minutes)
        self._items: Dict[str, Tuple[dict, datetime]] = {}
        self._lock = threading.Lock()

    def _save(self, key, data, expires_at):
        with self._lock:
            self._sweep()
            self._items[key] = (dict(data), expires_at)

    def _load(self, key):
        with self._lock:
            item = self._items.get(key)
            if not item:
                return None
            data, expires_at = item
            if expires_at <= _now():
                del self._items[key]
                return None
            return dict(data)

    def _drop(self, key):
        with self._lock:
            self._items.pop(key, None)

    def _sweep(self) -> int:
        # caller holds the lock
        now = _now()
        dead = [k for k, (_, exp) in self._items.items() if exp <= now]
        for k in dead:
            del self._items[k]
        return len(dead)

    def purge_expired(self) -> int:
        with self._lock:
            return self._sweep()


class DatabaseSessionManager(SessionManager):
    def __init__(self, ttl_minutes: int, session_factory: Callable[[], Session] = SessionLocal):
        super().__init__(ttl_minutes)
        self._factory = session_factory

    def _save(self, key, data, expires_at):
        try:
            with self._factory() as db:
                db.add(SessionRecord(token_hash=key, data_json=json.dumps(data), expires_at=expires_at))
                db.commit()
        except SQLAlchemyError as e:
            raise StoreError("Session store unavailable") from e

    def _load(self, key):
        try:
            with self._factory() as db:
                rec = db.get(SessionRecord, key)
                if not rec:
                    return None
                if _aware(rec.expires_at) <= _now():
                    db.delete(rec)
                    db.commit()
                    return None
                return json.loads(rec.data_json or "{}")
        except SQLAlchemyError as e:
            raise StoreError("Session store unavailable") from e

    def _drop(self, key):
        try:
            with self._factory() as db:
                db.execute(delete(SessionRecord).where(SessionRecord.token_hash == key))
                db.commit()
        except SQLAlchemyError as e:
            raise StoreError("Session store unavailable") from e

    def purge_expired(self) -> int:
        try:
            with self._factory() as db:
                res = db.execute(delete(SessionRecord).where(SessionRecord.expires_at <= _now()))
                db.commit()
                return res.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreError("Session store unavailable") from e


def build_session_manager(kind: str | None = None, ttl_minutes: int | None = None) -> SessionManager:
    kind = (kind or settings.SESSION_STORE).lower()
    ttl = ttl_minutes or settings.SESSION_TTL_MIN
    if kind == "memory":
        return MemorySessionManager(ttl)
    if kind == "database":
        return DatabaseSessionManager(ttl)
    raise ValueError(f"unknown session store: {kind}")

_manager: SessionManager | None = None

# FastAPI dep
def get_session_manager() -> SessionManager:
    global _manager
    if _manager is None:
        _manager = build_session_manager()
        logger.info("session store: %s, ttl %s min", type(_manager).__name__, settings.SESSION_TTL_MIN)
    return _manager

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_TTL_MIN * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
    )

def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.SESSION_COOKIE_NAME,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
    )
