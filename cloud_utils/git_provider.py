# cloud_utils/git_provider.py
# -*- coding: utf-8 -*-
"""
Git Provider - runs the git command line for the remote synchronizer.

Uses subprocess to run git commands - no external Python dependencies required.
Requires Git to be installed on the system. Timeouts are left to git itself.
"""

import os
import re
import logging
import subprocess
from typing import NamedTuple, Optional

from utils import redact_url


# Line-ending normalization notices: counted, not logged one by one
LINE_ENDING_NOTICE_RE = re.compile(
    r"(?:\b(?:CR)?LF will be replaced by (?:CR)?LF\b)"
    r"|(?:The file will have its original line endings in your working directory)"
)


class GitResult(NamedTuple):
    ok: bool
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return (self.stdout + self.stderr).strip()


class GitRunner:
    """
    Thin wrapper around the git executable.

    Every call captures stdout/stderr, logs each line verbatim (tokens
    redacted) and returns a GitResult; non-zero exit codes are returned,
    never raised, so callers decide what a failure means.
    """

    def __init__(self, cwd: Optional[str] = None, token: Optional[str] = None, executable: str = "git"):
        self.cwd = cwd
        self.token = token
        self.executable = executable

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run(self, *args: str, cwd: Optional[str] = None, quiet: bool = False) -> GitResult:
        """
        Run a git command.

        Args:
            args: git arguments (e.g. "add", "-A")
            cwd: working directory, defaults to the runner's cwd
            quiet: log output lines at DEBUG instead of INFO (large diffs)
        """
        cwd = cwd or self.cwd
        printable = redact_url(" ".join(args), self.token)
        logging.info(f"git {printable}")

        run_kwargs = dict(
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            env=self._environment(),
        )
        if os.name == "nt":
            run_kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)

        try:
            completed = subprocess.run([self.executable] + list(args), **run_kwargs)
        except FileNotFoundError:
            logging.error("Git is not installed or not in PATH")
            return GitResult(False, 127, "", "Git is not installed or not in PATH")
        except OSError as e:
            logging.error(f"Unable to start git: {e}")
            return GitResult(False, 126, "", str(e))

        result = GitResult(completed.returncode == 0, completed.returncode,
                           completed.stdout or "", completed.stderr or "")
        self._log_output(result, quiet)
        if not result.ok and not quiet:
            logging.warning(f"git {args[0] if args else ''} exited with code {result.returncode}")
        return result

    def _environment(self) -> dict:
        env = os.environ.copy()
        # never block an unattended run on a credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def _log_output(self, result: GitResult, quiet: bool) -> None:
        level = logging.DEBUG if quiet else logging.INFO
        notices = 0
        for stream in (result.stdout, result.stderr):
            for line in stream.splitlines():
                if not line.strip():
                    continue
                if LINE_ENDING_NOTICE_RE.search(line):
                    notices += 1
                    continue
                logging.log(level, f"  git: {redact_url(line, self.token)}")
        if notices:
            logging.info(f"  git: {notices} line-ending normalization notice(s) suppressed")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_available(self) -> bool:
        """Check if Git is available on the system."""
        return self.run("--version", cwd=os.getcwd(), quiet=True).ok

    def head_commit(self, cwd: Optional[str] = None) -> Optional[str]:
        """Current HEAD hash, or None when the repository has no commits yet."""
        result = self.run("rev-parse", "HEAD", cwd=cwd, quiet=True)
        if not result.ok:
            return None
        return result.stdout.strip() or None
