"""Temporary file storage."""

from .temp_store import TemporaryFileStore

__all__ = ["TemporaryFileStore"]
