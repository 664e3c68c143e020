"""Durable per-scope token records.

:class:`TokenStore` keeps a :class:`~webverify.models.ScopeTokenRecord` for
every scope the user has verified, plus the scope written most recently
(used when a caller asks for a token without naming a scope).

The whole mapping is serialised as **one JSON blob** under a fixed key of the
:class:`~webverify.auth.storage.SecureStorage` backend, so every write
replaces all scopes at once and readers never observe a partial record.

A missing or unreadable blob is treated as "no cached tokens": the store
loads empty and never fails its caller. Individual malformed entries inside
an otherwise valid blob are skipped.

All methods are synchronous and guarded by a single lock per store instance;
they are safe to call from any thread.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from pydantic import ValidationError

from webverify.auth.storage import SecureStorage
from webverify.models import ScopeTokenRecord, TokenStoreState

logger = logging.getLogger(__name__)

STORAGE_KEY = "webverify.tokens"


class TokenStore:
    """Thread-safe cache of scope token records backed by secure storage.

    Args:
        backend: Where the serialised state lives.
        key: Storage key of the blob (default :data:`STORAGE_KEY`).

    Example::

        store = TokenStore(MemorySecureStorage())
        store.write("student", record)
        assert store.read("student") == record
        assert store.latest_scope == "student"
    """

    def __init__(self, backend: SecureStorage, key: str = STORAGE_KEY) -> None:
        self._backend = backend
        self._key = key
        self._lock = threading.RLock()
        self._records: dict[str, ScopeTokenRecord] = {}
        self._latest_scope: Optional[str] = None
        self.load()

    @property
    def latest_scope(self) -> Optional[str]:
        """The most recently written scope, or ``None`` when the store is empty."""
        with self._lock:
            return self._latest_scope

    def load(self) -> TokenStoreState:
        """(Re)load the state from the backend, replacing the in-memory cache.

        ``latest_scope`` is recomputed as the scope whose access token expires
        last among the records that parsed successfully.
        """
        with self._lock:
            state = self._deserialize(self._backend.get(self._key))
            self._records = dict(state.records)
            self._latest_scope = state.latest_scope
            return state

    def snapshot(self) -> TokenStoreState:
        """Return a copy of the current state."""
        with self._lock:
            return TokenStoreState(records=dict(self._records), latest_scope=self._latest_scope)

    def read(self, scope: str) -> Optional[ScopeTokenRecord]:
        with self._lock:
            return self._records.get(scope)

    def write(self, scope: str, record: ScopeTokenRecord) -> None:
        """Replace the record for *scope* and persist the full state.

        The in-memory cache is only updated after the backend accepted the new
        blob, so a failing backend leaves the previous state intact.

        Raises:
            OSError: If the backend cannot persist the state.
        """
        with self._lock:
            records = dict(self._records)
            records[scope] = record
            self._backend.set(self._key, self._serialize(records))
            self._records = records
            self._latest_scope = scope
        logger.debug("Stored tokens for scope %r", scope)

    def clear(self) -> None:
        """Delete every stored scope, in memory and in the backend."""
        with self._lock:
            self._backend.delete(self._key)
            self._records = {}
            self._latest_scope = None
        logger.debug("Cleared token store")

    def is_empty(self) -> bool:
        with self._lock:
            return not self._records

    def scopes(self) -> list[str]:
        """Stored scopes, sorted alphabetically."""
        with self._lock:
            return sorted(self._records)

    # ------------------------------------------------------------------ #
    # Serialisation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _serialize(records: dict[str, ScopeTokenRecord]) -> bytes:
        data = {scope: rec.model_dump(mode="json") for scope, rec in records.items()}
        return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def _deserialize(blob: Optional[bytes]) -> TokenStoreState:
        if not blob:
            return TokenStoreState()
        try:
            data = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Stored token data is unreadable; starting empty")
            return TokenStoreState()
        if not isinstance(data, dict):
            logger.warning("Stored token data has an unexpected shape; starting empty")
            return TokenStoreState()

        records: dict[str, ScopeTokenRecord] = {}
        for scope, raw in data.items():
            try:
                records[scope] = ScopeTokenRecord.model_validate(raw)
            except ValidationError:
                logger.warning("Skipping malformed token record for scope %r", scope)

        latest = max(records, key=lambda s: records[s].access_token_expiry, default=None)
        return TokenStoreState(records=records, latest_scope=latest)
