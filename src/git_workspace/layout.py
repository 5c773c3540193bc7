"""Locating the superproject root and the paths inside it."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

ROOT_ENV = "GIT_WORKSPACE_ROOT"
DEFAULT_WORKSPACE_ENV = "GIT_WORKSPACE_DEFAULT"
DEFAULT_WORKSPACE = "main"

CONFIG_DIR = ".workspace"
LEGACY_FILE = "workspace.conf"
REPOS_DIR = "repos"
WORKTREES_DIR = "worktrees"
WORKSPACE_MARKER = ".workspace"
WORKSPACE_BRANCH_PREFIX = "workspace/"


@dataclass(frozen=True)
class RootLayout:
    """Paths of one superproject root."""

    root: Path

    @property
    def config_dir(self) -> Path:
        return self.root / CONFIG_DIR

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def lock_file(self) -> Path:
        return self.config_dir / "config.json.lock"

    @property
    def legacy_file(self) -> Path:
        return self.root / LEGACY_FILE

    @property
    def repos_dir(self) -> Path:
        return self.root / REPOS_DIR

    @property
    def worktrees_dir(self) -> Path:
        return self.root / WORKTREES_DIR

    def workspace_path(self, name: str) -> Path:
        return self.worktrees_dir / name

    def central_path(self, repo_name: str) -> Path:
        return self.repos_dir / repo_name

    def backup_path(self, label: str) -> Path:
        """A fresh, timestamped place under .workspace/broken/ to move damaged data to."""
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        base = self.config_dir / "broken" / f"{label.replace('/', '_')}-{stamp}"
        path = base
        counter = 1
        while path.exists():
            counter += 1
            path = base.with_name(f"{base.name}-{counter}")
        return path

    def current_workspace(self, cwd: Path | None = None) -> str | None:
        """Name of the workspace containing ``cwd``, if any.

        Workspace names may contain slashes (``feature/x``), so the match is
        the longest existing workspace directory that is a parent of ``cwd``.
        """
        here = (cwd or Path.cwd()).resolve()
        worktrees = self.worktrees_dir.resolve()
        try:
            relative = here.relative_to(worktrees)
        except ValueError:
            return None
        parts = relative.parts
        known = set(self.list_workspaces())
        for depth in range(len(parts), 0, -1):
            candidate = "/".join(parts[:depth])
            if candidate in known:
                return candidate
        return None

    def list_workspaces(self) -> list[str]:
        """Workspace names found under worktrees/, sorted.

        A directory is a workspace if it carries the marker file (it may itself
        be a worktree of the superproject), or if it sits directly under
        worktrees/, is not a checkout and holds no marked
        workspace below it (workspaces created by hand or by older versions).
        """
        worktrees = self.worktrees_dir
        if not worktrees.is_dir():
            return []

        names: list[str] = []
        for child in sorted(worktrees.iterdir()):
            if not child.is_dir():
                continue
            found = _collect_marked(child, worktrees)
            if found:
                names.extend(found)
            elif not (child / ".git").exists():
                names.append(child.name)
        return sorted(names)


def _is_marked(directory: Path) -> bool:
    return (directory / WORKSPACE_MARKER).is_file()


def _collect_marked(directory: Path, worktrees: Path) -> list[str]:
    # "a" and "a/b" cannot both be branch names, so a marked directory ends the walk
    if _is_marked(directory):
        return [directory.relative_to(worktrees).as_posix()]
    found: list[str] = []
    for child in sorted(directory.iterdir()):
        if child.is_dir() and (_is_marked(child) or not (child / ".git").exists()):
            found.extend(_collect_marked(child, worktrees))
    return found


def resolve_root(explicit: Path | None = None, cwd: Path | None = None) -> Path:
    """Find the superproject root.

    Priority order:
    1. ``explicit`` (the --root option)
    2. $GIT_WORKSPACE_ROOT environment variable
    3. nearest ancestor of ``cwd`` holding .workspace/
    4. nearest ancestor of ``cwd`` holding workspace.conf or worktrees/
    5. ``cwd`` itself

    Nothing inside a linked worktree (a directory with a ``.git`` file) is a
    root: a checkout may well track its own workspace.conf or worktrees/.
    """
    if explicit is not None:
        return explicit.expanduser().resolve()

    env_root = os.environ.get(ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()

    start = (cwd or Path.cwd()).resolve()
    candidates = [start, *start.parents]
    linked = [c for c in candidates if (c / ".git").is_file()]
    if linked:
        # skip everything inside the outermost linked worktree
        candidates = candidates[candidates.index(linked[-1]) + 1 :]
    for candidate in candidates:
        if (candidate / CONFIG_DIR).is_dir():
            return candidate
    for candidate in candidates:
        if (candidate / LEGACY_FILE).is_file() or (candidate / WORKTREES_DIR).is_dir():
            return candidate
    return start


def default_workspace_name() -> str:
    return os.environ.get(DEFAULT_WORKSPACE_ENV) or DEFAULT_WORKSPACE
