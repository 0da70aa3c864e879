from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass
class DbStats:
    time_ms: float = 0.0
    queries: int = 0


_db_stats: ContextVar[DbStats | None] = ContextVar("db_stats", default=None)


def start_db_timer() -> object:
    return _db_stats.set(DbStats())


def stop_db_timer(token: object) -> None:
    _db_stats.reset(token)


def is_timing() -> bool:
    return _db_stats.get() is not None


def add_db_time(delta_ms: float) -> None:
    stats = _db_stats.get()
    if stats is None:
        return
    stats.time_ms += delta_ms
    stats.queries += 1


def get_db_stats() -> DbStats | None:
    return _db_stats.get()
