"""Thin wrapper around the ``git`` executable.

Every version-control action this tool performs goes through
:class:`GitOperations`; nothing here knows about workspaces or configuration.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

from loguru import logger

from .errors import GitCommandError, classify_git_error

# Keep git from prompting for credentials or opening an editor mid-batch.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true"}


class GitOperations:
    """Low-level Git operations for a single repository or worktree."""

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a git command in the repository."""
        logger.debug("git {} (cwd={})", " ".join(args), self.repo_path)
        result = subprocess.run(
            ["git", *args],
            cwd=self.repo_path,
            capture_output=True,
            text=True,
            check=False,
            env={**os.environ, **_GIT_ENV},
        )
        if check and result.returncode != 0:
            raise classify_git_error(args, result.returncode, result.stderr or result.stdout)
        return result

    def _output(self, *args: str) -> str | None:
        """Stripped stdout, or None when the command fails."""
        result = self._run(*args, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    # -------------------------------------------------------------------------
    # Central repository
    # -------------------------------------------------------------------------

    def clone_bare(self, url: str, dest: Path) -> None:
        """Clone ``url`` as a bare repository at ``dest``."""
        self._run("clone", "--bare", "--quiet", url, str(dest))

    def configure_remote_tracking(self) -> None:
        """Make fetches populate refs/remotes/origin/* instead of local heads."""
        self._run("config", "remote.origin.fetch", "+refs/heads/*:refs/remotes/origin/*")

    def fetch(self, remote: str = "origin") -> None:
        self._run("fetch", "--prune", "--quiet", remote)

    def default_branch(self) -> str | None:
        """Branch HEAD points at (for a bare clone, the remote's default branch)."""
        return self._output("symbolic-ref", "--quiet", "--short", "HEAD")

    def remote_url(self, remote: str = "origin") -> str | None:
        return self._output("remote", "get-url", remote)

    def is_bare(self) -> bool:
        return self._output("rev-parse", "--is-bare-repository") == "true"

    # -------------------------------------------------------------------------
    # Refs
    # -------------------------------------------------------------------------

    def rev_parse(self, ref: str) -> str | None:
        """Resolve ``ref`` to a commit id."""
        return self._output("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")

    def ref_exists(self, ref: str) -> bool:
        return self._run("show-ref", "--verify", "--quiet", ref, check=False).returncode == 0

    def local_branch_exists(self, branch: str) -> bool:
        return self.ref_exists(f"refs/heads/{branch}")

    def remote_branch_exists(self, branch: str, remote: str = "origin") -> bool:
        return self.ref_exists(f"refs/remotes/{remote}/{branch}")

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._run("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        return result.returncode == 0

    def has_commits(self) -> bool:
        """True once any ref points at a commit."""
        return bool(self._output("rev-list", "-n", "1", "--all"))

    def short_sha(self, ref: str = "HEAD") -> str | None:
        return self._output("rev-parse", "--short", ref)

    # -------------------------------------------------------------------------
    # Worktrees
    # -------------------------------------------------------------------------

    def worktree_add(
        self,
        path: Path,
        branch: str,
        *,
        start_point: str | None = None,
        track: bool = False,
    ) -> None:
        """Add a linked worktree at ``path``.

        Without ``start_point`` the existing local ``branch`` is checked out;
        with it, ``branch`` is created from ``start_point``.
        """
        if start_point is None:
            self._run("worktree", "add", "--quiet", str(path), branch)
            return
        args = ["worktree", "add", "--quiet"]
        if track:
            args.append("--track")
        else:
            args.append("--no-track")
        args += ["-b", branch, str(path), start_point]
        self._run(*args)

    def worktree_remove(self, path: Path) -> None:
        self._run("worktree", "remove", "--force", "--force", str(path))

    def worktree_prune(self) -> None:
        self._run("worktree", "prune")

    # -------------------------------------------------------------------------
    # Working tree
    # -------------------------------------------------------------------------

    def current_branch(self) -> str | None:
        """Checked-out branch, or None when HEAD is detached or unresolvable."""
        return self._output("symbolic-ref", "--quiet", "--short", "HEAD")

    def upstream(self) -> str | None:
        return self._output("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")

    def set_upstream(self, upstream: str) -> None:
        self._run("branch", "--set-upstream-to", upstream)

    def checkout_detached(self, ref: str) -> None:
        self._run("checkout", "--quiet", "--detach", ref)

    def merge_ff_only(self, upstream: str) -> None:
        self._run("merge", "--ff-only", "--quiet", upstream)

    def get_status_porcelain(self) -> dict:
        """Staged/unstaged/untracked counts from ``git status --porcelain=v2``."""
        info = {"staged_count": 0, "unstaged_count": 0, "untracked_count": 0}
        result = self._run("status", "--porcelain=v2", check=False)
        if result.returncode != 0:
            raise classify_git_error(("status",), result.returncode, result.stderr)
        for line in result.stdout.splitlines():
            if line.startswith("1 ") or line.startswith("2 "):
                # Changed entry: XY sub mH mI mW hH hI path
                xy = line[2:4]
                if xy[0] != ".":
                    info["staged_count"] += 1
                if xy[1] != ".":
                    info["unstaged_count"] += 1
            elif line.startswith("u "):
                info["staged_count"] += 1
                info["unstaged_count"] += 1
            elif line.startswith("? "):
                info["untracked_count"] += 1
        return info

    def is_dirty(self) -> bool:
        info = self.get_status_porcelain()
        return any(info.values())


def read_gitdir_pointer(checkout: Path) -> Path | None:
    """Target of a worktree's ``.git`` file, or None if it is not a pointer file."""
    git_file = checkout / ".git"
    if not git_file.is_file():
        return None
    try:
        content = git_file.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if not content.startswith("gitdir:"):
        return None
    target = Path(content[len("gitdir:") :].strip())
    if not target.is_absolute():
        target = (checkout / target).resolve()
    return target


__all__ = ["GitCommandError", "GitOperations", "read_gitdir_pointer"]
