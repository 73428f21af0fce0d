from __future__ import annotations

import json
import logging
import os
import shutil
import uuid
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from studytools.models.entities import ProcessingSession
from studytools.models.manifests import ArtifactManifest
from studytools.pipeline.exceptions import ArtifactExpired, ArtifactNotFound, WorkspaceError
from studytools.utils.security import normalize_session_id, safe_join, sanitize_filename

logger = logging.getLogger(__name__)

SESSION_RECORD = "session.json"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionWorkspace:
    """Per-session artifact storage with a sidecar record holding the expiry.

    Layout::

        <base_dir>/<session_id>/session.json
        <base_dir>/<session_id>/<slot>__<logical name>

    The sidecar is the only expiry authority: downloads compare against it at
    read time and the sweeper purges from it.
    """

    def __init__(
        self,
        base_dir: Path,
        ttl: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._base_dir = base_dir
        self._ttl = ttl
        self._clock = clock
        self._base_dir.mkdir(parents=True, exist_ok=True)
        # Sessions whose request is still running are never treated as abandoned.
        self._in_flight: set[str] = set()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def now(self) -> datetime:
        return self._clock()

    def allocate(self, operation: str) -> ProcessingSession:
        session = ProcessingSession(
            session_id=str(uuid.uuid4()),
            operation=operation,
            created_at=self.now(),
        )
        try:
            self._session_dir(session.session_id).mkdir(parents=True, exist_ok=False)
            self._write_record(session)
        except OSError as e:
            raise WorkspaceError(detail=str(e)) from e
        self._in_flight.add(session.session_id)
        logger.debug("allocated session %s for %s", session.session_id, operation)
        return session

    def register(
        self,
        session_id: str,
        data: bytes,
        logical_name: str,
        media_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> ArtifactManifest:
        session = self._read_record(session_id)
        if session is None:
            raise WorkspaceError(f"Session {session_id} is not allocated")
        slot = len(session.artifacts)
        now = self.now()
        safe_name = sanitize_filename(logical_name)
        try:
            path = safe_join(self._session_dir(session.session_id), f"{slot}__{safe_name}")
            path.write_bytes(data)
        except (OSError, ValueError) as e:
            raise WorkspaceError(detail=str(e)) from e
        manifest = ArtifactManifest(
            slot=slot,
            path=str(path),
            logical_name=safe_name,
            media_type=media_type,
            size_bytes=len(data),
            created_at=now,
            metadata=metadata or {},
        )
        session.artifacts.append(manifest)
        if session.expires_at is None:
            session.expires_at = now + self._ttl
        try:
            self._write_record(session)
        except OSError as e:
            raise WorkspaceError(detail=str(e)) from e
        return manifest

    def finish(self, session_id: str) -> None:
        """Mark orchestration of a session as over, registered or not."""
        self._in_flight.discard(session_id)

    def is_in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def get_session(self, session_id: str) -> ProcessingSession | None:
        try:
            return self._read_record(session_id)
        except ValueError:
            return None

    def resolve(self, session_id: str, slot: int = 0, now: datetime | None = None) -> ArtifactManifest:
        now_ = now or self.now()
        session = self.get_session(session_id)
        if session is None or session.expires_at is None:
            raise ArtifactNotFound()
        if session.is_expired(now_):
            raise ArtifactExpired()
        if slot < 0 or slot >= len(session.artifacts):
            raise ArtifactNotFound()
        manifest = session.artifacts[slot]
        if not Path(manifest.path).is_file():
            raise ArtifactNotFound()
        return manifest

    def iter_session_ids(self) -> Iterator[str]:
        if not self._base_dir.exists():
            return
        with os.scandir(self._base_dir) as entries:
            for entry in entries:
                if not entry.is_dir():
                    continue
                try:
                    yield normalize_session_id(entry.name)
                except ValueError:
                    continue

    def purge_session_if_expired(
        self,
        session_id: str,
        now: datetime,
        abandoned_after: timedelta | None = None,
    ) -> int:
        """Delete the session if it has expired; return the artifacts removed.

        Sessions that never received an artifact have no expiry yet; they are
        treated as abandoned once ``abandoned_after`` has passed since creation.
        A missing or unreadable record counts as abandoned. Neither applies to
        a session whose request is still running.
        """
        in_flight = session_id in self._in_flight
        session_dir = self._session_dir(session_id)
        try:
            session = self._read_record(session_id)
        except ValueError:
            session = None
        if session is None:
            if in_flight or abandoned_after is None or not self._older_than(session_dir, now, abandoned_after):
                return 0
            self._remove_dir(session_dir)
            return 0
        if session.expires_at is None:
            if in_flight or abandoned_after is None or now < session.created_at + abandoned_after:
                return 0
        elif not session.is_expired(now):
            return 0
        self._remove_dir(session_dir)
        return len(session.artifacts)

    def purge_expired(self, now: datetime | None = None, abandoned_after: timedelta | None = None) -> int:
        now_ = now or self.now()
        removed = 0
        for session_id in list(self.iter_session_ids()):
            removed += self.purge_session_if_expired(session_id, now_, abandoned_after)
        return removed

    def discard(self, session_id: str) -> None:
        self._remove_dir(self._session_dir(session_id))

    def _session_dir(self, session_id: str) -> Path:
        return safe_join(self._base_dir, normalize_session_id(session_id))

    def _record_path(self, session_id: str) -> Path:
        return self._session_dir(session_id) / SESSION_RECORD

    def _read_record(self, session_id: str) -> ProcessingSession | None:
        path = self._record_path(session_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("unreadable session record for %s: %s", session_id, e)
            return None
        try:
            return ProcessingSession.model_validate(data)
        except ValidationError as e:
            logger.warning("invalid session record for %s: %s", session_id, e)
            return None

    def _write_record(self, session: ProcessingSession) -> None:
        path = self._record_path(session.session_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(
            json.dumps(session.model_dump(mode="json"), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp, path)

    def _remove_dir(self, path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning("could not delete session directory %s: %s", path.name, e)

    @staticmethod
    def _older_than(path: Path, now: datetime, age: timedelta) -> bool:
        try:
            mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError:
            return False
        return now - mtime > age
