"""
DB models of the remote record service.

- GameProgress: per-user progress record (snapshot columns + last location)
- ProgressEvent: append-only audit log
"""

from progress_sync.models.progress import GameProgress, ProgressEvent

__all__ = [
    "GameProgress",
    "ProgressEvent",
]
