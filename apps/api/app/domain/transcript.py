"""Derive the persisted transcription result and its caption renderings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.schemas.job import TranscriptionResult, TranscriptSegment

if TYPE_CHECKING:
    from app.schemas.backend import BackendReport

DEFAULT_LANGUAGE = "en"


def build_result(report: BackendReport) -> TranscriptionResult:
    """Build the stored result from a completed backend report."""
    text = report.transcript or ""
    segments = list(report.segments)
    duration = max((segment.end for segment in segments), default=0.0)
    return TranscriptionResult(
        text=text,
        segments=segments,
        summary=report.summary,
        sentiment=report.sentiment,
        translation=report.translation,
        captions=report.captions,
        processing_time=report.processing_time,
        duration=duration,
        word_count=len(text.split()),
        language=DEFAULT_LANGUAGE,
        external_job_id=report.job_id,
    )


def format_srt_time(seconds: float) -> str:
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def render_srt(segments: list[TranscriptSegment]) -> str:
    blocks = []
    for index, segment in enumerate(segments, start=1):
        speaker = f"[{segment.speaker}] " if segment.speaker else ""
        blocks.append(
            f"{index}\n{format_srt_time(segment.start)} --> {format_srt_time(segment.end)}\n{speaker}{segment.text}\n"
        )
    return "\n".join(blocks)
