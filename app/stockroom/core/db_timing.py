from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass


@dataclass
class QueryTimer:
    total_ms: float = 0.0
    queries: int = 0

    def record(self, elapsed_ms: float) -> None:
        self.total_ms += elapsed_ms
        self.queries += 1


_query_timer: ContextVar[QueryTimer | None] = ContextVar("query_timer", default=None)


def start_query_timer() -> Token:
    return _query_timer.set(QueryTimer())


def stop_query_timer(token: Token) -> None:
    _query_timer.reset(token)


def current_query_timer() -> QueryTimer | None:
    return _query_timer.get()
