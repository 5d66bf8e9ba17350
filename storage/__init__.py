"""Job storage backends."""

from storage.jobs import FileJobStore, InMemoryJobStore, JobStore

__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "FileJobStore",
]
