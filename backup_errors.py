# backup_errors.py
# -*- coding: utf-8 -*-
"""
Error types raised by the backup pipeline.

Lower components raise these (or return partial results); only
backup_runner decides whether a failure ends the run.
"""


class FileIOWarningKind:
    """Reasons recorded on skipped files; these never end a run."""

    SIZE = "size"
    COPY_ERROR = "copy_error"


class BackupError(Exception):
    """Base class for fatal backup errors."""

    kind = "backup_error"


class ConfigurationError(BackupError):
    """Missing required field or unreadable configuration file."""

    kind = "configuration"


class StagingRecoveryError(BackupError):
    """The staging directory could not be cleared after every strategy was tried."""

    kind = "staging_recovery"

    def __init__(self, path, message=None):
        self.path = path
        super().__init__(message or (
            f"Staging directory '{path}' could not be removed. "
            "Close any program holding files open inside it (or remove links/junctions "
            "inside it) and delete it manually."
        ))


class RemoteSyncError(BackupError):
    """A git step (clone/init/add/commit/push) failed."""

    kind = "remote_sync"

    def __init__(self, message, output=""):
        self.output = output
        super().__init__(message)


class FileReplicationError(BackupError):
    """The replication destination itself is not usable."""

    kind = "file_replication"
