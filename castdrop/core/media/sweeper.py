"""
Expiry sweeper.

Deletes every stored artifact older than the retention window: finished
videos, chunks of abandoned uploads, and leftover metadata. It is the
backstop for every best-effort cleanup elsewhere, so a failed delete here
is only counted and retried on the next run.

The sweeper is triggered from outside the request path, either by
``scripts/sweep_expired.py`` from cron or by the in-process loop started in
the application lifespan.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from . import keys
from .models import MediaConfig, ObjectStore, PrefixSweepResult, SweepReport

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpirySweeper:
    """Deletes objects older than ``config.max_age`` under each prefix."""

    def __init__(
        self,
        store: ObjectStore,
        config: MediaConfig,
        prefixes: Iterable[str] = keys.SWEPT_PREFIXES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._config = config
        self._prefixes = tuple(prefixes)
        self._clock = clock

    async def sweep(self, dry_run: bool = False) -> SweepReport:
        """Run one pass over every prefix. With ``dry_run`` nothing is deleted."""
        cutoff = self._clock() - self._config.max_age
        report = SweepReport(cutoff=cutoff)

        for prefix in self._prefixes:
            report.prefixes.append(await self._sweep_prefix(prefix, cutoff, dry_run))

        logger.info(
            "Expiry sweep complete",
            extra={
                "cutoff": cutoff.isoformat(),
                "dry_run": dry_run,
                "expired": report.expired,
                "deleted": report.deleted,
                "failed": report.failed,
                "by_prefix": {p.prefix: p.deleted for p in report.prefixes},
            }
        )

        return report

    async def _sweep_prefix(
        self,
        prefix: str,
        cutoff: datetime,
        dry_run: bool,
    ) -> PrefixSweepResult:
        result = PrefixSweepResult(prefix=prefix)

        # collect first: deleting while paging can shift continuation tokens
        try:
            expired = []
            for info in self._store.list_objects(prefix):
                result.scanned += 1
                if _as_utc(info.last_modified) < cutoff:
                    expired.append(info.key)
        except Exception as e:
            logger.error(
                "Failed to list prefix during sweep",
                extra={"prefix": prefix, "error": str(e)}
            )
            result.failed += 1
            return result

        result.expired = len(expired)
        if dry_run:
            return result

        for key in expired:
            try:
                await self._store.delete(key)
                result.deleted += 1
                logger.debug("Deleted expired object", extra={"key": key})
            except Exception as e:
                result.failed += 1
                logger.warning(
                    "Failed to delete expired object",
                    extra={"key": key, "error": str(e)}
                )

        return result


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


async def run_periodically(
    sweeper: ExpirySweeper,
    interval_seconds: float,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """
    Sweep every ``interval_seconds`` until ``stop`` is set or the task is
    cancelled. One failed run does not end the loop.
    """
    stop = stop or asyncio.Event()
    while not stop.is_set():
        try:
            await sweeper.sweep()
        except Exception as e:
            logger.error("Expiry sweep failed", extra={"error": str(e)}, exc_info=e)

        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
