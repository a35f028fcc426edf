"""
Actualización diaria de volúmenes de trading.

Reglas:
- Solo tokens en competición (status ongoing); los archivados no se tocan.
- Secuencial, con pausa entre tokens (BATCH_DELAY_SECONDS) para no saturar Binance.
- Un fallo en un token (fetch, timeout o escritura) se registra y se salta;
  el batch nunca se aborta por un token.
- Un único reloj para todo el batch: todas las entradas comparten fecha y timestamp.
- Como mucho un batch en ejecución por proceso (DailyUpdateJob).
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo

import structlog

from core.config import settings
from core.exceptions import InvalidStateError, TokenNotFoundError
from repositories.token_store import TokenStore, session_store
from services.reconciliation import (
    DAILY_FETCH_2DAY,
    FetchedVolume,
    ReportingClock,
    TokenState,
    apply_fetched_volume,
)
from sync.alpha_client import BinanceAlphaClient

logger = structlog.get_logger(__name__)

FetchOne = Callable[[TokenState], Awaitable[FetchedVolume | None]]


# ---------------------------------------------------------------------------
# Resultado del batch
# ---------------------------------------------------------------------------


@dataclass
class DailyUpdateStats:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    total: int = 0      # tokens considerados (no archivados)
    updated: int = 0
    skipped: int = 0    # sin datos en Binance o archivados durante el batch
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)

    def as_dict(self) -> dict:
        return {
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "total": self.total,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


async def run_daily_batch(
    store: TokenStore,
    fetch_one: FetchOne,
    now: datetime,
    *,
    tz: tzinfo | None = None,
    delay_seconds: float | None = None,
    fetch_timeout: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> DailyUpdateStats:
    """
    Recorre los tokens no archivados y aplica su ventana de 2 días con
    type=daily_fetch_2day. `fetch_one` y `sleep` son inyectables para tests.
    """
    clock = ReportingClock.at(now, tz or settings.reporting_tz)
    delay = settings.BATCH_DELAY_SECONDS if delay_seconds is None else delay_seconds
    timeout = settings.FETCH_TIMEOUT_SECONDS if fetch_timeout is None else fetch_timeout

    stats = DailyUpdateStats(started_at=clock.timestamp)
    tokens = [t for t in await store.list_tokens() if not t.is_archived]
    stats.total = len(tokens)
    logger.info("batch.start", total=stats.total, date=clock.today.isoformat())

    for index, token in enumerate(tokens):
        if index > 0 and delay > 0:
            await sleep(delay)

        log = logger.bind(token_id=token.id, name=token.name)

        try:
            fetched = await asyncio.wait_for(fetch_one(token), timeout=timeout or None)
        except Exception as exc:
            stats.failed += 1
            stats.errors.append(f"{token.name}: fetch failed: {exc!r}")
            log.warning("batch.fetch_failed", error=repr(exc))
            continue

        if fetched is None:
            stats.skipped += 1
            log.info("batch.no_data")
            continue

        try:
            await store.mutate(
                token.id,
                lambda current: apply_fetched_volume(current, fetched, clock, DAILY_FETCH_2DAY),
            )
        except (InvalidStateError, TokenNotFoundError) as exc:
            # Archivado o borrado entre la lectura inicial y la escritura
            stats.skipped += 1
            log.info("batch.token_skipped", reason=exc.message)
            continue
        except Exception as exc:
            stats.failed += 1
            stats.errors.append(f"{token.name}: save failed: {exc!r}")
            log.error("batch.save_failed", error=repr(exc))
            continue

        stats.updated += 1
        log.info(
            "batch.token_updated",
            volume_today=str(fetched.volume_today),
            volume_yesterday=str(fetched.volume_yesterday),
        )

    stats.finish()
    logger.info(
        "batch.done",
        total=stats.total,
        updated=stats.updated,
        skipped=stats.skipped,
        failed=stats.failed,
        duration=round(stats.duration_seconds, 2),
    )
    return stats


# ---------------------------------------------------------------------------
# Job: un batch a la vez
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailyUpdateJob:
    """
    Envoltorio con estado del batch, compartido por el scheduler y el endpoint
    POST /api/admin/trigger-update.

    Uso:
        job = DailyUpdateJob()
        started = job.trigger()      # False si ya hay uno en curso
        await job.run()              # ejecución directa (scheduler)
    """

    def __init__(
        self,
        store_factory: Callable[[], AbstractAsyncContextManager[TokenStore]] = session_store,
        client_factory: Callable[[], AbstractAsyncContextManager[BinanceAlphaClient]] = BinanceAlphaClient,
        now: Callable[[], datetime] = _utc_now,
        delay_seconds: float | None = None,
        fetch_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store_factory = store_factory
        self._client_factory = client_factory
        self._now = now
        self._delay_seconds = delay_seconds
        self._fetch_timeout = fetch_timeout
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self.status: str = "idle"
        self.last_stats: DailyUpdateStats | None = None
        self.last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked() or (self._task is not None and not self._task.done())

    async def run(self) -> DailyUpdateStats | None:
        """Ejecuta el batch. Devuelve None si ya había otro en curso."""
        if self._lock.locked():
            logger.warning("batch.already_running")
            return None

        async with self._lock:
            self.status = "running"
            self.last_error = None
            try:
                async with self._client_factory() as client, self._store_factory() as store:
                    stats = await run_daily_batch(
                        store,
                        lambda token: client.fetch_volume(token.name),
                        self._now(),
                        delay_seconds=self._delay_seconds,
                        fetch_timeout=self._fetch_timeout,
                        sleep=self._sleep,
                    )
            except Exception as exc:
                self.status = "error"
                self.last_error = str(exc)
                logger.error("batch.failed", error=str(exc), exc_info=exc)
                raise

            self.last_stats = stats
            self.status = "idle" if not stats.failed else "error"
            return stats

    def trigger(self) -> bool:
        """Lanza run() en segundo plano. Devuelve False si ya hay un batch en curso."""
        if self.is_running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run_in_background())
        return True

    async def _run_in_background(self) -> None:
        try:
            await self.run()
        except Exception:
            # Ya registrado en run(); la tarea no tiene a quién propagarlo
            pass

    def snapshot(self) -> dict:
        """Estado para GET /api/admin/update-status."""
        return {
            "status": "running" if self.is_running else self.status,
            "lastRun": self.last_stats.as_dict() if self.last_stats else None,
            "lastError": self.last_error,
        }

    async def wait(self) -> None:
        """Espera a que termine el batch lanzado con trigger() (shutdown y tests)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
