"""Transcript archive kept in process memory."""

from __future__ import annotations

from datetime import UTC, datetime

from app.adapters.archive.base import TranscriptArchive, artifact_prefix
from app.domain.transcript import render_srt
from app.repositories.base import JobRecord
from app.schemas.job import TranscriptionResult


class InMemoryArchive(TranscriptArchive):
    def __init__(self) -> None:
        self.objects: dict[str, str] = {}
        self.save_count = 0

    def save(self, job: JobRecord, result: TranscriptionResult) -> list[str]:
        prefix = artifact_prefix(job.id, job.completed_at or datetime.now(UTC))
        artifacts = {
            f"{prefix}/transcript.json": result.model_dump_json(indent=2),
            f"{prefix}/transcript.txt": result.text,
        }
        if result.segments:
            artifacts[f"{prefix}/transcript.srt"] = render_srt(result.segments)
        self.objects.update(artifacts)
        self.save_count += 1
        return sorted(artifacts)


__all__ = ["InMemoryArchive"]
