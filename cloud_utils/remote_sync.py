# cloud_utils/remote_sync.py
# -*- coding: utf-8 -*-
"""
Remote Synchronizer - publishes one backup run to the remote repository.

Steps: clear staging, clone (or init an empty repository), replicate the
configured sources, write the manifest, derive the digest from the staged
diff, commit and force-push. The staging directory is removed by the
caller after a successful run and kept for diagnosis after a failure.
"""

import os
import shutil
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import config
import core_logic
import manifest_builder
from backup_errors import RemoteSyncError
from cloud_utils.git_provider import GitRunner
from cloud_utils.staging import StagingTree
from digest_utils import digest_writer
from digest_utils.narration import narrate_changes
from digest_utils.pack_changes import PackChangeSet, extract_pack_changes
from digest_utils.stats_parser import extract_stats_events, is_stats_file, merge_playtime
from utils import embed_token_in_url, redact_url

# Stats files are diffed with full context so records can be tracked
FULL_CONTEXT = "--unified=1000000"

NOTHING_TO_COMMIT_MARKERS = ("nothing to commit", "nothing added to commit", "no changes added to commit")


@dataclass
class SyncOutcome:
    files_copied: int = 0
    skipped: List[core_logic.SkipRecord] = field(default_factory=list)
    changed_files: List[str] = field(default_factory=list)
    digest_path: Optional[str] = None
    committed: bool = False
    pushed: bool = False
    initialized_fresh: bool = False


class RemoteSynchronizer:
    """Owns the staging directory for one run and talks to the remote through git."""

    def __init__(self, configuration, git: Optional[GitRunner] = None,
                 staging: Optional[StagingTree] = None, now: Optional[datetime] = None):
        self.config = configuration
        self.staging = staging or StagingTree(configuration.resolved_staging_dir)
        self.git = git or GitRunner(cwd=self.staging.path, token=configuration.access_token)
        if self.git.cwd is None:
            self.git.cwd = self.staging.path
        self.now = now or datetime.now()
        self.outcome = SyncOutcome()

    # -------------------------------------------------------------------------
    # Full run
    # -------------------------------------------------------------------------

    def sync(self) -> SyncOutcome:
        if not self.git.is_available():
            raise RemoteSyncError("Git is not installed or not in PATH.")
        self.clear_staging()
        self.acquire()
        self.configure_repository()
        self.stage_files()
        self.add_all()
        self.write_digest()
        self.outcome.committed = self.commit()
        if self.outcome.committed:
            self.publish()
            self.outcome.pushed = True
        else:
            logging.info("Nothing new to publish; remote left unchanged.")
        return self.outcome

    # -------------------------------------------------------------------------
    # ClearStaging / Acquire
    # -------------------------------------------------------------------------

    def clear_staging(self) -> None:
        self.staging.clear()

    def _remote_url(self) -> str:
        return embed_token_in_url(self.config.remote_url, self.config.access_token)

    def acquire(self) -> None:
        """Shallow clone of the remote; falls back to a fresh repository when the clone fails."""
        parent = os.path.dirname(self.staging.path)
        os.makedirs(parent, exist_ok=True)

        result = self.git.run("clone", "--depth", "1", self._remote_url(), self.staging.path, cwd=parent)
        if result.ok and os.path.isdir(self.staging.git_dir):
            logging.info(f"Cloned {redact_url(self.config.remote_url)} into staging.")
            self.staging.mark_acquired()
            if self.git.head_commit() is None:
                # empty remote: the first commit goes to the configured branch
                self.git.run("symbolic-ref", "HEAD", f"refs/heads/{self.config.branch}")
            return

        logging.warning("Clone failed (empty remote or network error). Initializing a new repository.")
        self.staging.clear()
        os.makedirs(self.staging.path, exist_ok=True)
        init = self.git.run("init", f"--initial-branch={self.config.branch}")
        if not init.ok:
            raise RemoteSyncError("git init failed in the staging directory.", init.output)
        remote = self.git.run("remote", "add", "origin", self._remote_url())
        if not remote.ok:
            raise RemoteSyncError("Unable to register the remote URL.", redact_url(remote.output, self.config.access_token))
        self.outcome.initialized_fresh = True
        self.staging.mark_acquired()

    def configure_repository(self) -> None:
        settings = [
            ("user.name", self.config.git_user_name),
            ("user.email", self.config.git_user_email),
            ("core.autocrlf", "true" if os.name == "nt" else "input"),
            ("core.longpaths", "true"),
            ("core.quotepath", "false"),
        ]
        for key, value in settings:
            result = self.git.run("config", key, value)
            if not result.ok:
                raise RemoteSyncError(f"Unable to set git config {key}.", result.output)

    # -------------------------------------------------------------------------
    # Stage
    # -------------------------------------------------------------------------

    def _replicate(self, source: str, target_rel: str, excludes) -> None:
        result = core_logic.replicate(source, self.staging.join(target_rel), excludes)
        self.outcome.files_copied += result.copied
        self.outcome.skipped.extend(result.skipped)

    def _reset_target(self, target_rel: str) -> None:
        """Drop the cloned copy of a task folder so local deletions reach the remote."""
        path = self.staging.join(target_rel)
        if os.path.isdir(path):
            shutil.rmtree(path)

    def stage_files(self) -> None:
        cfg = self.config
        excludes = core_logic.effective_excludes(cfg.exclude_dirs)

        install_target = cfg.task_target("install")
        save_roles = [(role, source, cfg.task_target(role))
                      for role, source in (("save", cfg.resolved_save_path),
                                           ("user_save", cfg.resolved_user_save_path))]

        # every target is reset before the first copy; tasks may share a target
        for target in dict.fromkeys(t for t in [install_target] + [t for _, _, t in save_roles] if t):
            self._reset_target(target)

        if install_target:
            for name in cfg.include_dirs:
                if core_logic.is_excluded_directory(f"{name}/_", excludes):
                    logging.warning(f"'{name}' is an excluded folder and is never backed up.")
                    continue
                source = os.path.join(cfg.install_path, name)
                if os.path.isdir(source):
                    self._replicate(source, f"{install_target}/{name}", excludes)
                else:
                    logging.info(f"Install folder not present, skipping: {source}")

        seen_roots = set()
        for role, source, target in save_roles:
            if not target:
                continue
            if not source or not os.path.isdir(source):
                logging.info(f"Save folder for '{role}' not present, skipping: {source}")
                continue
            real = os.path.normcase(os.path.realpath(source))
            if real in seen_roots:
                logging.info(f"Save folder for '{role}' already backed up, skipping: {source}")
                continue
            seen_roots.add(real)
            self._replicate(source, target, excludes)

        manifest_path = self.staging.join(cfg.target_subpath, config.MANIFEST_FILENAME)
        manifest_builder.write_manifest(manifest_path, cfg.song_roots, self.now)

        if cfg.ignore_file:
            if os.path.isfile(cfg.ignore_file):
                shutil.copyfile(cfg.ignore_file, self.staging.join(config.GITIGNORE_FILENAME))
                logging.info(f"Ignore rules copied from {cfg.ignore_file}")
            else:
                logging.warning(f"Ignore file not found: {cfg.ignore_file}")

    def add_all(self) -> None:
        """git add -A, retried once with a narrower add after resetting the index."""
        result = self.git.run("add", "-A")
        if result.ok:
            return
        logging.warning("git add -A failed, resetting the index and retrying with a narrower add.")
        self.git.run("reset")
        paths = [self.config.target_subpath]
        if os.path.isfile(self.staging.join(config.GITIGNORE_FILENAME)):
            paths.append(config.GITIGNORE_FILENAME)
        retry = self.git.run("add", "--", *paths)
        if not retry.ok:
            raise RemoteSyncError("Unable to stage the backup files.", result.output + "\n" + retry.output)

    # -------------------------------------------------------------------------
    # Diff & Digest
    # -------------------------------------------------------------------------

    def _diff_args(self, head: Optional[str]) -> List[str]:
        return ["diff", "--cached"] + (["HEAD"] if head else [])

    def staged_changes(self, head: Optional[str]) -> List[str]:
        result = self.git.run(*self._diff_args(head), "--name-only", quiet=True)
        if not result.ok:
            raise RemoteSyncError("Unable to list the staged changes.", result.output)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def file_diff(self, head: Optional[str], path: str) -> str:
        result = self.git.run(*self._diff_args(head), FULL_CONTEXT, "--", path, quiet=True)
        if not result.ok:
            logging.warning(f"Unable to diff '{path}', no events extracted from it.")
            return ""
        return result.stdout

    def build_digest(self) -> Optional[digest_writer.DigestEntry]:
        """Digest of the staged changes, or None when nothing worth reporting changed."""
        head = self.git.head_commit()
        changed = self.staged_changes(head)
        self.outcome.changed_files = changed
        if not changed:
            return None
        self.git.run(*self._diff_args(head), "--stat")

        diffs: Dict[str, str] = {}
        scores, deltas = [], []
        added, removed = PackChangeSet(), PackChangeSet()
        manifest_rel = f"{self.config.target_subpath}/{config.MANIFEST_FILENAME}"

        if not head:
            logging.info("Initial backup: changes are diffed against an empty tree.")

        for path in changed:
            if is_stats_file(path):
                diffs[path] = self.file_diff(head, path)
                file_scores, delta = extract_stats_events(path, diffs[path])
                scores.extend(file_scores)
                if delta:
                    deltas.append(delta)
            elif path == manifest_rel:
                diffs[path] = self.file_diff(head, path)
                added, removed = extract_pack_changes(diffs[path])

        narrated = narrate_changes(changed, diffs)
        if not narrated:
            return None
        return digest_writer.DigestEntry(
            timestamp=self.now.replace(microsecond=0),
            scores=[s.sentence() for s in scores],
            playtime=merge_playtime(deltas),
            added=added,
            removed=removed,
            changed_files=[digest_writer.narration_line(p, text) for p, text in narrated],
        )

    def write_digest(self) -> None:
        """Write the run digest, prune the window and refresh the README, staging all of it."""
        digest_dir = self.staging.join(config.DIGESTS_DIRNAME)
        entry = self.build_digest()
        if entry is not None:
            self.outcome.digest_path = digest_writer.write_digest(digest_dir, entry)
            for name in digest_writer.prune_window(digest_dir):
                self.git.run("rm", "--cached", "--ignore-unmatch", "--quiet", "--",
                             f"{config.DIGESTS_DIRNAME}/{name}")
        else:
            logging.info("No digest for this run (no reportable changes).")

        readme_path = self.staging.join(config.README_FILENAME)
        digest_writer.write_readme(readme_path, digest_writer.load_window(digest_dir), self.config.target_subpath)

        paths = [config.README_FILENAME]
        if os.path.isdir(digest_dir):
            paths.append(config.DIGESTS_DIRNAME)
        result = self.git.run("add", "-A", "--", *paths)
        if not result.ok:
            raise RemoteSyncError("Unable to stage the digest files.", result.output)

    # -------------------------------------------------------------------------
    # Commit & Publish
    # -------------------------------------------------------------------------

    def commit(self) -> bool:
        """Commit the staged changes. Returns False when there was nothing to commit."""
        message = f"Backup {self.now.strftime('%Y-%m-%d %H:%M:%S')}"
        result = self.git.run("commit", "-m", message)
        if result.ok:
            return True
        if any(marker in result.output.lower() for marker in NOTHING_TO_COMMIT_MARKERS):
            logging.info("Nothing to commit.")
            return False
        raise RemoteSyncError("git commit failed.", result.output)

    def publish(self) -> None:
        """Force-push the current branch head, overwriting the remote history."""
        result = self.git.run("push", "--force", "origin", "HEAD")
        if not result.ok:
            raise RemoteSyncError("Publishing to the remote failed.",
                                  redact_url(result.output, self.config.access_token))
        logging.info("Backup published to the remote.")
