"""Broken-checkout detection.

Detection is split in two: :func:`probe_checkout` gathers facts from the
filesystem and git, :func:`diagnose` decides from those facts alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .git import GitOperations, read_gitdir_pointer
from .models import BrokenReason


@dataclass(frozen=True)
class CheckoutProbe:
    """Observed metadata of a checkout directory."""

    exists: bool
    git_entry: str | None = None  # "file", "dir" or None
    gitdir: Path | None = None
    gitdir_exists: bool = False
    gitdir_points_back: bool = True
    central_exists: bool = False
    has_commits: bool = False
    head_resolvable: bool = False


def diagnose(probe: CheckoutProbe) -> BrokenReason | None:
    """Return why a checkout is broken, or None if it looks healthy (or absent)."""
    if not probe.exists:
        return None
    if probe.git_entry is None:
        return BrokenReason.NOT_A_CHECKOUT
    if probe.git_entry == "dir":
        if not probe.has_commits:
            return BrokenReason.NO_COMMITS
        return BrokenReason.STANDALONE
    if probe.gitdir is None:
        return BrokenReason.MISSING_GITDIR
    if not probe.gitdir_exists:
        if not probe.central_exists:
            return BrokenReason.MISSING_CENTRAL
        return BrokenReason.MISSING_GITDIR
    if not probe.central_exists:
        return BrokenReason.MISSING_CENTRAL
    if not probe.gitdir_points_back:
        return BrokenReason.FOREIGN_GITDIR
    if not probe.has_commits:
        return BrokenReason.NO_COMMITS
    if not probe.head_resolvable:
        return BrokenReason.UNRESOLVABLE_HEAD
    return None


def _central_of(gitdir: Path) -> Path | None:
    # A linked worktree's gitdir is <central>/worktrees/<id>
    if gitdir.parent.name != "worktrees":
        return None
    return gitdir.parent.parent


def _points_back(gitdir: Path, checkout: Path) -> bool:
    # <gitdir>/gitdir names the .git file of the checkout that owns the metadata
    try:
        recorded = Path((gitdir / "gitdir").read_text(encoding="utf-8").strip())
    except OSError:
        return False
    if not recorded.is_absolute():
        recorded = gitdir / recorded
    return recorded.resolve() == (checkout / ".git").resolve()


def probe_checkout(path: Path) -> CheckoutProbe:
    """Collect a :class:`CheckoutProbe` for the checkout at ``path``."""
    if not path.exists():
        return CheckoutProbe(exists=False)

    git_entry_path = path / ".git"
    if git_entry_path.is_dir():
        git_entry = "dir"
    elif git_entry_path.is_file():
        git_entry = "file"
    else:
        return CheckoutProbe(exists=True)

    gitdir = read_gitdir_pointer(path) if git_entry == "file" else git_entry_path
    gitdir_exists = gitdir is not None and gitdir.is_dir()
    central = _central_of(gitdir) if (gitdir is not None and git_entry == "file") else None
    central_exists = git_entry == "dir" or (central is not None and central.is_dir())

    if not gitdir_exists:
        return CheckoutProbe(
            exists=True,
            git_entry=git_entry,
            gitdir=gitdir,
            gitdir_exists=False,
            central_exists=central_exists,
        )

    points_back = git_entry == "dir" or _points_back(gitdir, path)
    ops = GitOperations(path)
    has_commits = ops.has_commits()
    head_resolvable = ops.rev_parse("HEAD") is not None
    return CheckoutProbe(
        exists=True,
        git_entry=git_entry,
        gitdir=gitdir,
        gitdir_exists=True,
        gitdir_points_back=points_back,
        central_exists=central_exists,
        has_commits=has_commits,
        head_resolvable=head_resolvable,
    )
