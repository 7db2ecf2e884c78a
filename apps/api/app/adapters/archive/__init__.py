"""Transcript archive adapters."""

from .base import TranscriptArchive
from .filesystem import FilesystemArchive
from .memory import InMemoryArchive

__all__ = ["TranscriptArchive", "FilesystemArchive", "InMemoryArchive"]
