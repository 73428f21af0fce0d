from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from studytools.pipeline.ingestion import HoldingArea
from studytools.pipeline.workspace import SessionWorkspace

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    sessions_checked: int = 0
    artifacts_removed: int = 0
    holding_files_removed: int = 0


def _purge_holding_file(path: Path, now: datetime, max_age: timedelta) -> bool:
    try:
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        if now - mtime <= max_age:
            return False
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("could not delete stale upload %s: %s", path.name, e)
        return False
    return True


class ExpirySweeper:
    """Periodically deletes expired sessions and stale held uploads.

    Session expiry comes from each session record; only held uploads, which
    have no record, are aged by mtime. Sessions and uploads that belong to a
    request still in progress are never treated as abandoned or stale.
    """

    def __init__(
        self,
        workspace: SessionWorkspace,
        holding: HoldingArea,
        interval: timedelta = timedelta(seconds=300),
        holding_max_age: timedelta = timedelta(seconds=300),
        abandoned_after: timedelta = timedelta(seconds=600),
        batch_size: int = 200,
    ) -> None:
        self._workspace = workspace
        self._holding = holding
        self._interval = interval
        self._holding_max_age = holding_max_age
        self._abandoned_after = abandoned_after
        self._batch_size = max(1, batch_size)
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="expiry-sweeper")
        logger.info("expiry sweeper started (interval %.0fs)", self._interval.total_seconds())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("expiry sweeper stopped")

    async def run_once(self, now: datetime | None = None) -> SweepReport:
        now_ = now or self._workspace.now()
        report = SweepReport()

        session_ids = await asyncio.to_thread(lambda: list(self._workspace.iter_session_ids()))
        for start in range(0, len(session_ids), self._batch_size):
            batch = session_ids[start : start + self._batch_size]
            report.sessions_checked += len(batch)
            report.artifacts_removed += await asyncio.to_thread(self._purge_sessions, batch, now_)
            await asyncio.sleep(0)

        held = await asyncio.to_thread(self._holding.list_files)
        for start in range(0, len(held), self._batch_size):
            batch = held[start : start + self._batch_size]
            report.holding_files_removed += await asyncio.to_thread(self._purge_holding, batch, now_)
            await asyncio.sleep(0)

        if report.artifacts_removed or report.holding_files_removed:
            logger.info(
                "sweep removed %d artifacts and %d stale uploads",
                report.artifacts_removed,
                report.holding_files_removed,
            )
        return report

    def _purge_sessions(self, session_ids: list[str], now: datetime) -> int:
        removed = 0
        for session_id in session_ids:
            try:
                removed += self._workspace.purge_session_if_expired(session_id, now, self._abandoned_after)
            except Exception:
                logger.exception("failed to sweep session %s", session_id)
        return removed

    def _purge_holding(self, paths: list[Path], now: datetime) -> int:
        return sum(
            1
            for path in paths
            if not self._holding.is_pending(path) and _purge_holding_file(path, now, self._holding_max_age)
        )

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("expiry sweep failed")
            await asyncio.sleep(self._interval.total_seconds())
