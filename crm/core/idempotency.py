"""
Request-level idempotency backed by the key-value store.

A client sends ``Idempotency-Key`` on a mutating request. The first request
reserves the key; once it succeeds the response body is stored under the key
so that a retry gets the same body back instead of repeating the write. A
retry that arrives while the first request is still running gets 409.

This is the outer guard only. Ledger writes are additionally deduplicated by
the database (see the credit transaction ``idempotency_key`` column), which is
the stronger guarantee.
"""
import json
from dataclasses import dataclass
from typing import Any, Optional
from fastapi import Depends, Header
from crm.core.config import settings
from crm.core.exceptions import Conflict, InvalidInput, Unavailable
from crm.core.kv_store import KeyValueStore, get_kv_store
from crm.core.logging_config import logger

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
MAX_KEY_LENGTH = 255


@dataclass
class IdempotentReplay:
    status_code: int
    body: Any


class IdempotencyGuard:
    def __init__(
        self,
        store: Optional[KeyValueStore],
        key: Optional[str],
        ttl_seconds: int,
        key_prefix: str = "idempotent"
    ):
        self.store = store
        self.key = key
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._scope: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.store is not None and bool(self.key)

    def _redis_key(self) -> str:
        return f"{self.key_prefix}:{self._scope}:{self.key}"

    def begin(self, scope: str) -> Optional[IdempotentReplay]:
        """
        Reserve the key for this request.

        Returns the stored response if the key was already completed, None if
        the caller should proceed.

        Raises:
            Conflict: If another request with the same key is in flight
            Unavailable: If the store cannot be reached
        """
        if not self.active:
            return None

        self._scope = scope
        record = json.dumps({"status": STATUS_PROCESSING})
        try:
            reserved = self.store.set(self._redis_key(), record, self.ttl_seconds, only_if_absent=True)
            if reserved:
                return None
            existing = self.store.get(self._redis_key())
        except Exception as e:
            logger.error(f"Idempotency check failed: {type(e).__name__}: {str(e)}")
            raise Unavailable("Idempotency service unavailable")

        if existing is None:
            # Expired between the two calls; treat as fresh
            return self.begin(scope)

        stored = json.loads(existing)
        if stored.get("status") == STATUS_COMPLETED:
            logger.info(f"Idempotent replay: scope={scope}, key={self.key}")
            return IdempotentReplay(status_code=stored["status_code"], body=stored["body"])

        raise Conflict(
            "Request is being processed",
            headers={"Retry-After": "5"}
        )

    def complete(self, status_code: int, body: Any) -> None:
        if not self.active or self._scope is None:
            return
        record = json.dumps({"status": STATUS_COMPLETED, "status_code": status_code, "body": body})
        try:
            self.store.set(self._redis_key(), record, self.ttl_seconds)
        except Exception as e:
            # The write itself succeeded; a lost record only weakens replay protection
            logger.error(f"Failed to store idempotent response: {type(e).__name__}: {str(e)}")

    def release(self) -> None:
        """Drop the reservation after a failed request so the client can retry."""
        if not self.active or self._scope is None:
            return
        try:
            self.store.delete(self._redis_key())
        except Exception as e:
            logger.error(f"Failed to release idempotency key: {type(e).__name__}: {str(e)}")


def get_idempotency_guard(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    store: Optional[KeyValueStore] = Depends(get_kv_store)
) -> IdempotencyGuard:
    if idempotency_key is not None and (not idempotency_key.strip() or len(idempotency_key) > MAX_KEY_LENGTH):
        raise InvalidInput(
            "Invalid Idempotency-Key header",
            details=[{"field": "Idempotency-Key", "message": f"Must be 1-{MAX_KEY_LENGTH} characters"}]
        )
    return IdempotencyGuard(
        store=store,
        key=idempotency_key,
        ttl_seconds=settings.IDEMPOTENCY_TTL_SECONDS,
    )
