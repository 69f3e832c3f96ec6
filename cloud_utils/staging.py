# cloud_utils/staging.py
# -*- coding: utf-8 -*-
"""
Staging directory lifecycle.

The staging directory is the local clone (or fresh repository) where one
run assembles its changes. It is created at run start, removed after a
successful publish and left in place after a failure for diagnosis.
"""

import os
import sys
import stat
import shutil
import logging
import subprocess
import tempfile
from enum import Enum
from typing import Callable, List, Optional, Tuple

from backup_errors import StagingRecoveryError


class StagingState(Enum):
    EMPTY = "empty"
    ACQUIRED = "acquired"
    DESTROYED = "destroyed"


# -------------------------------------------------------------------------
# Clear strategies (first success wins)
# -------------------------------------------------------------------------

def _make_writable_and_retry(func, path, _exc):
    """rmtree error hook: git object files are read-only on Windows."""
    try:
        os.chmod(path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
        func(path)
    except OSError as e:
        logging.debug(f"  Could not remove '{path}': {e}")


def remove_tree(path: str) -> None:
    """Recursive delete, clearing read-only flags on the way."""
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_make_writable_and_retry)
    else:
        shutil.rmtree(path, onerror=_make_writable_and_retry)


def mirror_clear(path: str) -> None:
    """
    Mirror an empty folder onto path with the platform's mirror utility,
    then remove the emptied folder.
    """
    with tempfile.TemporaryDirectory(prefix="stepstate_empty_") as empty:
        if os.name == "nt":
            cmd = ["robocopy", empty, path, "/MIR", "/NFL", "/NDL", "/NJH", "/NJS", "/R:1", "/W:1"]
            completed = subprocess.run(cmd, capture_output=True, text=True,
                                       creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0))
            # robocopy: codes below 8 mean success
            failed = completed.returncode >= 8
        else:
            cmd = ["rsync", "-a", "--delete", empty + os.sep, path + os.sep]
            completed = subprocess.run(cmd, capture_output=True, text=True)
            failed = completed.returncode != 0
        for line in (completed.stdout + completed.stderr).splitlines():
            if line.strip():
                logging.info(f"  {cmd[0]}: {line.strip()}")
        if failed:
            raise OSError(f"{cmd[0]} exited with code {completed.returncode}")
    os.rmdir(path)


DEFAULT_CLEAR_STRATEGIES: List[Tuple[str, Callable[[str], None]]] = [
    ("recursive delete", remove_tree),
    ("mirror clear", mirror_clear),
]


def clear_directory(path: str, strategies: Optional[List[Tuple[str, Callable[[str], None]]]] = None) -> None:
    """
    Remove path, escalating through the clear strategies.

    Raises:
        StagingRecoveryError: if the directory still exists after every strategy.
    """
    if not os.path.lexists(path):
        return
    for name, strategy in (strategies if strategies is not None else DEFAULT_CLEAR_STRATEGIES):
        logging.info(f"Clearing staging directory ({name}): {path}")
        try:
            strategy(path)
        except (OSError, subprocess.SubprocessError) as e:
            logging.warning(f"Staging clear strategy '{name}' failed: {e}")
        if not os.path.lexists(path):
            logging.info("Staging directory cleared.")
            return
    raise StagingRecoveryError(path)


# -------------------------------------------------------------------------
# StagingTree
# -------------------------------------------------------------------------

class StagingTree:
    """Exclusively owned working directory for one backup run."""

    def __init__(self, path: str, clear_strategies=None):
        self.path = os.path.abspath(path)
        self.clear_strategies = clear_strategies
        self.state = StagingState.EMPTY

    def __repr__(self):
        return f"StagingTree({self.path!r}, {self.state.value})"

    @property
    def git_dir(self) -> str:
        return os.path.join(self.path, ".git")

    def join(self, *parts: str) -> str:
        """Absolute path for repository-relative parts (posix separators allowed)."""
        pieces = []
        for part in parts:
            pieces.extend(p for p in part.replace("\\", "/").split("/") if p)
        return os.path.join(self.path, *pieces)

    def clear(self) -> None:
        """Remove any leftover staging directory (ClearStaging)."""
        clear_directory(self.path, self.clear_strategies)
        self.state = StagingState.EMPTY

    def mark_acquired(self) -> None:
        if not os.path.isdir(self.git_dir):
            raise StagingRecoveryError(self.path, f"Staging directory '{self.path}' is not a git repository.")
        self.state = StagingState.ACQUIRED

    def destroy(self) -> None:
        """Remove the staging directory after a successful run."""
        clear_directory(self.path, self.clear_strategies)
        self.state = StagingState.DESTROYED
