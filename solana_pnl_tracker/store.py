"""
Position persistence.

The durable store is authoritative; PositionCache is a per-ledger read-through
cache; writes the store rejects are kept there so the process keeps running.
"""
import copy
import logging
import threading
from typing import Dict, Optional, Set, Tuple

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError
from google.auth.exceptions import GoogleAuthError

from .errors import StoreError
from .models import Position

logger = logging.getLogger(__name__)

Key = Tuple[str, str]  # (wallet, instrument)
_STORE_ERRORS = (FirebaseError, GoogleAuthError, ValueError)


class PositionStore:
    def get_position(self, wallet: str, instrument: str) -> Optional[Position]:
        raise NotImplementedError

    def set_position(self, wallet: str, instrument: str, pos: Position) -> None:
        raise NotImplementedError

    def get_applied(self, wallet: str, instrument: str) -> Set[str]:
        raise NotImplementedError

    def add_applied(self, wallet: str, instrument: str, signature: str) -> None:
        raise NotImplementedError

    def reset(self, wallet: str, instrument: str) -> None:
        raise NotImplementedError


class InMemoryPositionStore(PositionStore):
    def __init__(self):
        self.positions: Dict[Key, dict] = {}
        self.applied: Dict[Key, Set[str]] = {}
        self._lock = threading.Lock()

    def get_position(self, wallet, instrument):
        with self._lock:
            d = self.positions.get((wallet, instrument))
        return Position.from_dict(d) if d is not None else None

    def set_position(self, wallet, instrument, pos):
        with self._lock:
            self.positions[(wallet, instrument)] = pos.to_dict()

    def get_applied(self, wallet, instrument):
        with self._lock:
            return set(self.applied.get((wallet, instrument), ()))

    def add_applied(self, wallet, instrument, signature):
        with self._lock:
            self.applied.setdefault((wallet, instrument), set()).add(signature)

    def reset(self, wallet, instrument):
        with self._lock:
            self.positions.pop((wallet, instrument), None)
            self.applied.pop((wallet, instrument), None)


# =========================
# Firebase RTDB
# =========================

_init_lock = threading.Lock()


def init_firebase(database_url: str, credentials_file: Optional[str] = None) -> bool:
    """Initialize the default Firebase app once. False means persistence stays off."""
    if firebase_admin._apps:
        return True
    with _init_lock:
        if firebase_admin._apps:
            return True
        try:
            cred = (credentials.Certificate(credentials_file) if credentials_file
                    else credentials.ApplicationDefault())
            firebase_admin.initialize_app(cred, {"databaseURL": database_url})
        except (ValueError, OSError) as e:
            logger.warning("Firebase Admin not configured (%s). RTDB writes disabled.", e)
            return False
    logger.info("Firebase Admin initialized")
    return True


class FirebasePositionStore(PositionStore):
    """portfolios/{wallet}/{instrument} and applied/{wallet}/{instrument}/{signature}."""

    def __init__(self, root: str = ""):
        self.root = root.strip("/")

    def _ref(self, *parts: str):
        path = "/".join(p for p in (self.root,) + parts if p)
        return db.reference(path)

    def get_position(self, wallet, instrument):
        try:
            val = self._ref("portfolios", wallet, instrument).get()
        except _STORE_ERRORS as e:
            raise StoreError(f"get portfolios/{wallet}/{instrument}: {e}") from e
        return Position.from_dict(val) if isinstance(val, dict) else None

    def set_position(self, wallet, instrument, pos):
        try:
            self._ref("portfolios", wallet, instrument).set(pos.to_dict())
        except _STORE_ERRORS as e:
            raise StoreError(f"set portfolios/{wallet}/{instrument}: {e}") from e

    def get_applied(self, wallet, instrument):
        try:
            val = self._ref("applied", wallet, instrument).get()
        except _STORE_ERRORS as e:
            raise StoreError(f"get applied/{wallet}/{instrument}: {e}") from e
        return set(val.keys()) if isinstance(val, dict) else set()

    def add_applied(self, wallet, instrument, signature):
        try:
            self._ref("applied", wallet, instrument, signature).set(True)
        except _STORE_ERRORS as e:
            raise StoreError(f"add applied/{wallet}/{instrument}: {e}") from e

    def reset(self, wallet, instrument):
        try:
            self._ref("portfolios", wallet, instrument).delete()
            self._ref("applied", wallet, instrument).delete()
        except _STORE_ERRORS as e:
            raise StoreError(f"reset {wallet}/{instrument}: {e}") from e


def make_store(settings) -> PositionStore:
    if settings.firebase_enabled and init_firebase(settings.firebase_database_url,
                                                   settings.firebase_credentials_file):
        return FirebasePositionStore()
    logger.warning("FIREBASE_DATABASE_URL missing or unusable; positions are kept in memory only")
    return InMemoryPositionStore()


# =========================
# Cache
# =========================


class PositionCache:
    """Advisory copy of positions and applied signatures, owned by one ledger."""

    def __init__(self):
        self._positions: Dict[Key, Position] = {}
        self._applied: Dict[Key, Set[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: Key) -> Optional[Position]:
        with self._lock:
            p = self._positions.get(key)
            return copy.copy(p) if p is not None else None

    def put(self, key: Key, pos: Position) -> None:
        with self._lock:
            self._positions[key] = copy.copy(pos)

    def applied(self, key: Key) -> Optional[Set[str]]:
        with self._lock:
            s = self._applied.get(key)
            return set(s) if s is not None else None

    def set_applied(self, key: Key, sigs: Set[str]) -> None:
        with self._lock:
            self._applied[key] = set(sigs)

    def add_applied(self, key: Key, signature: str) -> None:
        with self._lock:
            self._applied.setdefault(key, set()).add(signature)

    def drop(self, key: Key) -> None:
        with self._lock:
            self._positions.pop(key, None)
            self._applied.pop(key, None)
