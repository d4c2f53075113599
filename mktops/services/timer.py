import asyncio
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable

from mktops.core.clock import utcnow
from mktops.services.status_kinds import is_production


@dataclass(frozen=True)
class ElapsedTime:
    seconds: int
    formatted: str
    is_running: bool

    def as_dict(self) -> dict[str, Any]:
        return {"seconds": self.seconds, "formatted": self.formatted, "is_running": self.is_running}


def format_hms(total_seconds: int) -> str:
    total_seconds = max(0, int(total_seconds))
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def session_seconds(started_at: datetime | None, now: datetime) -> int:
    if started_at is None:
        return 0
    return max(0, math.floor((now - started_at).total_seconds()))


def compute_elapsed(
    status: Any,
    started_at: datetime | None,
    accumulated: int | None,
    now: datetime | None = None,
) -> ElapsedTime:
    """Tempo de producao ao vivo de uma demanda.

    ``status`` pode ser o nome do status ou o proprio registro. Nada e
    gravado: a mesma entrada com o mesmo ``now`` sempre devolve o mesmo valor.
    """
    running = is_production(status)
    seconds = max(0, int(accumulated or 0))
    if running and started_at is not None:
        seconds += session_seconds(started_at, now or utcnow())
    return ElapsedTime(seconds=seconds, formatted=format_hms(seconds), is_running=running)


def elapsed_for(demand: Any, now: datetime | None = None) -> ElapsedTime:
    return compute_elapsed(
        demand.status,
        demand.production_started_at,
        demand.accumulated_time,
        now=now,
    )


async def watch_elapsed(
    status: Any,
    started_at: datetime | None,
    accumulated: int | None,
    interval: float = 1.0,
    clock: Callable[[], datetime] = utcnow,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AsyncIterator[ElapsedTime]:
    """Emite o tempo imediatamente e depois a cada ``interval`` enquanto estiver rodando.

    Parar de consumir (``aclose`` ou cancelamento da task) encerra o ciclo.
    """
    current = compute_elapsed(status, started_at, accumulated, now=clock())
    yield current
    while current.is_running:
        await sleep(interval)
        current = compute_elapsed(status, started_at, accumulated, now=clock())
        yield current
