from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from studytools.models.manifests import ArtifactManifest


class ProcessingSession(BaseModel):
    session_id: str
    operation: str
    created_at: datetime
    expires_at: datetime | None = None
    artifacts: list[ArtifactManifest] = Field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at
