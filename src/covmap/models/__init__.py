"""Data models for covmap."""

from covmap.models.changeset import ChangeType, Changeset, FileChange

__all__ = [
    "ChangeType",
    "Changeset",
    "FileChange",
]
