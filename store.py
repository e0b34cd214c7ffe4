"""
In-memory stores for OAuth sessions, entities and audit events.

Lifetime is the process: contents are lost on restart and nothing is persisted.
``clear()`` resets a store.
"""

import secrets
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _millis() -> int:
    return int(time.time() * 1000)


class RecordNotFound(KeyError):
    pass


class SessionTokenStore:
    """Google OAuth tokens keyed by an opaque session id handed to the browser."""

    def __init__(self) -> None:
        self._tokens: Dict[str, Dict[str, Any]] = {}

    def new_session(self, tokens: Dict[str, Any]) -> str:
        session_id = f"session_{_millis()}_{secrets.token_hex(5)}"
        self._tokens[session_id] = dict(tokens)
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not session_id:
            return None
        return self._tokens.get(session_id)

    def access_token(self, session_id: Optional[str]) -> Optional[str]:
        tokens = self.get(session_id)
        return tokens.get("access_token") if tokens else None

    def discard(self, session_id: str) -> None:
        self._tokens.pop(session_id, None)

    def clear(self) -> None:
        self._tokens.clear()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._tokens


class RecordStore:
    """Insertion-ordered records with generated ids ``<prefix>-<ms>-<hex>``."""

    def __init__(self, prefix: str, timestamp_field: str = "createdAt") -> None:
        self.prefix = prefix
        self.timestamp_field = timestamp_field
        self._records: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def _new_id(self) -> str:
        while True:
            record_id = f"{self.prefix}-{_millis()}-{secrets.token_hex(3)}"
            if record_id not in self._records:
                return record_id

    def create(self, fields: Dict[str, Any], defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        # Caller fields override the generated ones, except the id.
        now = _now_iso()
        record: Dict[str, Any] = {self.timestamp_field: now}
        if self.timestamp_field == "createdAt":
            record["lastUpdated"] = now
        record.update(defaults or {})
        record.update(fields)
        record["id"] = self._new_id()
        self._records[record["id"]] = record
        return record

    def get(self, record_id: str) -> Dict[str, Any]:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFound(record_id) from None

    def update(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        record = self.get(record_id)
        record.update({k: v for k, v in fields.items() if k != "id"})
        record["lastUpdated"] = _now_iso()
        return record

    def list(self) -> List[Dict[str, Any]]:
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
