from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.stockroom.core.states import IdempotencyState
from app.stockroom.db.models import IdempotencyRecord


class IdempotencyRepository:
    def __init__(self, db):
        self.db = db

    def get_by_key(self, *, endpoint: str, method: str, idempotency_key: str) -> IdempotencyRecord | None:
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.endpoint == endpoint,
            IdempotencyRecord.method == method,
        )
        return self.db.execute(stmt).scalars().first()

    def claim(self, *, endpoint: str, method: str, idempotency_key: str, request_hash: str) -> IdempotencyRecord | None:
        """Commit an in-progress row for the key, or return None if another request owns it."""
        if self.get_by_key(endpoint=endpoint, method=method, idempotency_key=idempotency_key) is not None:
            return None
        now = datetime.utcnow()
        record = IdempotencyRecord(
            endpoint=endpoint,
            method=method,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            state=IdempotencyState.IN_PROGRESS.value,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return None
        return record

    def finish(self, record: IdempotencyRecord, *, state: IdempotencyState, status_code: int, response_body: str) -> None:
        # The request transaction may have been rolled back or closed by now.
        record = self.db.merge(record)
        record.state = state.value
        record.status_code = status_code
        record.response_body = response_body
        record.updated_at = datetime.utcnow()
        self.db.commit()
