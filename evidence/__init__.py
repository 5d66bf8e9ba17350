"""Evidence layer: structural fingerprints, page snapshots, and the result log."""

from evidence.result_log import FileResultLog, ResultLog
from evidence.snapshot import FileFingerprintStore, FingerprintStore, StructuralFingerprint

__all__ = [
    "StructuralFingerprint",
    "FingerprintStore",
    "FileFingerprintStore",
    "ResultLog",
    "FileResultLog",
]
