"""Background release of stock held by abandoned transfers.

A Pending or Approved transfer whose reservation outlives ``HOLD_TTL_MINUTES``
is cancelled, which releases every hold it owns. Transfers that moved past
Approved are never touched: confirmation clears hold expiry.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from app.stockroom.core.config import settings
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_event
from app.stockroom.core.metrics import metrics
from app.stockroom.core.states import CANCELLABLE_TRANSFER_STATUSES, TransferAction, TransferStatus
from app.stockroom.repos.stock import StockRepository
from app.stockroom.services.audit import AuditEventPayload, AuditService
from app.stockroom.services.transfers import TransferEngine

logger = logging.getLogger(__name__)

EXPIRED_HOLD_REASON = "hold expired"


class HoldReaper:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        interval_seconds: int | None = None,
        actor: str | None = None,
    ):
        self._session_factory = session_factory
        self._interval = settings.HOLD_REAPER_INTERVAL_SEC if interval_seconds is None else interval_seconds
        self._actor = actor or settings.HOLD_REAPER_ACTOR
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self, now: datetime | None = None) -> int:
        """Cancel transfers holding expired stock; returns how many were cancelled."""
        now = now or datetime.utcnow()
        session = self._session_factory()
        try:
            transfer_ids = StockRepository(session).expired_hold_transfer_ids(now)
            session.rollback()
            reaped = 0
            for transfer_id in transfer_ids:
                if self._stop_event.is_set():
                    break
                if self._reap_one(session, transfer_id):
                    reaped += 1
            if reaped:
                metrics.increment_holds_reaped(reaped)
            return reaped
        finally:
            session.close()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="hold-reaper", daemon=True)
        self._thread.start()
        log_event(logger, "hold_reaper.started", interval_seconds=self._interval)

    def stop(self, timeout: float = 10.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        log_event(logger, "hold_reaper.stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Hold reaper tick failed")
            self._stop_event.wait(timeout=self._interval)

    def _reap_one(self, session: Session, transfer_id) -> bool:
        engine = TransferEngine(session)
        try:
            transfer = engine.get(transfer_id)
            if TransferStatus(transfer.status) not in CANCELLABLE_TRANSFER_STATUSES:
                session.rollback()
                return False
            outcome = engine.apply_action(
                transfer_id, TransferAction.CANCEL, self._actor, reason=EXPIRED_HOLD_REASON
            )
        except AppError as exc:
            session.rollback()
            if exc.error is not ErrorCatalog.INVALID_STATE_TRANSITION:
                raise
            # Moved forward between the scan and the cancel.
            return False
        transfer, previous_status = outcome.transfer, outcome.previous_status
        log_event(
            logger,
            "hold.reaped",
            transfer_id=str(transfer.id),
            transfer_number=transfer.transfer_number,
            from_status=previous_status,
        )
        AuditService(session).record_event(
            AuditEventPayload(
                actor=self._actor,
                action="transfer.cancel",
                entity_type="transfer",
                entity_id=str(transfer.id),
                before={"status": previous_status},
                after={"status": transfer.status, "cancel_reason": transfer.cancel_reason},
                metadata={"reason": EXPIRED_HOLD_REASON},
            )
        )
        return True
