"""Transcription backend adapters."""

from .base import TranscriptionGateway
from .fake_gateway import FakeTranscriptionGateway
from .http_gateway import HttpTranscriptionGateway

__all__ = [
    "TranscriptionGateway",
    "FakeTranscriptionGateway",
    "HttpTranscriptionGateway",
]
