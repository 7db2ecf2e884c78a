"""Transcript archive on local disk."""

from __future__ import annotations

from datetime import UTC, datetime
import json
import logging
from pathlib import Path

from app.adapters.archive.base import TranscriptArchive, artifact_prefix
from app.core.logging_safety import safe_log_identifier
from app.domain.transcript import render_srt
from app.repositories.base import JobRecord
from app.schemas.job import TranscriptionResult

logger = logging.getLogger(__name__)


class FilesystemArchive(TranscriptArchive):
    """Writes ``transcript.json``, ``transcript.txt`` and ``transcript.srt`` under a dated prefix."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def save(self, job: JobRecord, result: TranscriptionResult) -> list[str]:
        saved_at = datetime.now(UTC)
        prefix = artifact_prefix(job.id, job.completed_at or saved_at)
        directory = self.root / prefix
        directory.mkdir(parents=True, exist_ok=True)

        document = {
            "job_id": job.id,
            "transcription_data": result.model_dump(mode="json"),
            "backend": {
                "job_id": job.external_job_id,
                "status": job.status.value,
                "processing_time": result.processing_time,
            },
            "saved_at": saved_at.isoformat(),
        }
        written = [f"{prefix}/transcript.json", f"{prefix}/transcript.txt"]
        (directory / "transcript.json").write_text(json.dumps(document, indent=2), encoding="utf-8")
        (directory / "transcript.txt").write_text(result.text, encoding="utf-8")
        if result.segments:
            (directory / "transcript.srt").write_text(render_srt(result.segments), encoding="utf-8")
            written.append(f"{prefix}/transcript.srt")

        logger.info(
            "archive.saved job_id=%s artifacts=%s",
            safe_log_identifier(job.id, prefix="jid"),
            len(written),
        )
        return written


__all__ = ["FilesystemArchive"]
