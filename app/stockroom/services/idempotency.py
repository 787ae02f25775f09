"""Idempotency-Key support for mutating endpoints.

A keyed request first claims a row for ``(endpoint, method, key)`` and commits
it, then does its work. The finished row keeps the response, failures included,
so a retry with the same actor and body gets the stored answer back instead of
running twice. The same key with a different body is refused.
"""

import hashlib
import json
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_event
from app.stockroom.core.metrics import metrics
from app.stockroom.core.states import IdempotencyState
from app.stockroom.db.models import IdempotencyRecord
from app.stockroom.repos.idempotency import IdempotencyRepository

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "X-Idempotency-Result"


def idempotency_key_from(headers) -> str | None:
    key = (headers.get(IDEMPOTENCY_HEADER) or "").strip()
    return key or None


def request_fingerprint(actor: str, body: dict) -> str:
    canonical = json.dumps({"actor": actor, "body": body}, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyClaim:
    def __init__(self, record: IdempotencyRecord, repo: IdempotencyRepository):
        self.record = record
        self.repo = repo
        self.key = record.idempotency_key

    def succeed(self, status_code: int, body: dict) -> None:
        self._store(IdempotencyState.SUCCEEDED, status_code, body)

    def fail(self, status_code: int, body: dict) -> None:
        self._store(IdempotencyState.FAILED, status_code, body)

    def _store(self, state: IdempotencyState, status_code: int, body: dict) -> None:
        self.repo.finish(self.record, state=state, status_code=status_code, response_body=json.dumps(body, default=str))


class IdempotencyService:
    def __init__(self, db):
        self.repo = IdempotencyRepository(db)

    def begin(self, request: Request, *, actor: str, body: dict) -> tuple[IdempotencyClaim | None, JSONResponse | None]:
        """Claim the request's key, or return the stored response for a repeat.

        Requests without the header get ``(None, None)`` and run normally. The
        claim is parked on ``request.state`` so the error handlers can store
        failures against it.
        """
        key = idempotency_key_from(request.headers)
        if key is None:
            return None, None
        endpoint, method = request.url.path, request.method
        fingerprint = request_fingerprint(actor, body)
        record = self.repo.claim(endpoint=endpoint, method=method, idempotency_key=key, request_hash=fingerprint)
        if record is None:
            existing = self.repo.get_by_key(endpoint=endpoint, method=method, idempotency_key=key)
            return None, self._replay(existing, key, fingerprint)
        claim = IdempotencyClaim(record, self.repo)
        request.state.idempotency = claim
        return claim, None

    def _replay(self, existing: IdempotencyRecord | None, key: str, fingerprint: str) -> JSONResponse:
        if existing is not None and existing.request_hash != fingerprint:
            raise AppError(
                ErrorCatalog.IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD,
                details={"idempotency_key": key},
            )
        if existing is None or existing.state == IdempotencyState.IN_PROGRESS.value or existing.response_body is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS, details={"idempotency_key": key})
        metrics.increment_idempotency_replay()
        log_event(
            logger,
            "idempotency.replay",
            idempotency_key=key,
            endpoint=existing.endpoint,
            status_code=existing.status_code,
        )
        return JSONResponse(
            status_code=existing.status_code,
            content=json.loads(existing.response_body),
            headers={REPLAY_HEADER: ErrorCatalog.IDEMPOTENCY_REPLAY.code},
        )
