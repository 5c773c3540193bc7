"""Domain models shared by the configuration, registry and workspace layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import IntEnum, StrEnum
from pathlib import Path

# =============================================================================
# Configuration
# =============================================================================


class ConfigTier(IntEnum):
    """Configuration tiers; a higher value wins when names collide."""

    LEGACY_FILE = 1
    DEFAULT_TEMPLATE = 2
    WORKSPACE_OVERRIDE = 3

    @property
    def label(self) -> str:
        return {
            ConfigTier.LEGACY_FILE: "legacy",
            ConfigTier.DEFAULT_TEMPLATE: "default",
            ConfigTier.WORKSPACE_OVERRIDE: "workspace",
        }[self]


def repo_name_from_url(url: str) -> str:
    """Derive a repository name from its URL (basename without one ``.git``)."""
    trimmed = url.rstrip("/")
    if trimmed.endswith(".git"):
        trimmed = trimmed[: -len(".git")]
    # scp-like urls (git@host:group/repo) have no slash before the path
    base = trimmed.rsplit("/", 1)[-1]
    if ":" in base and "/" not in trimmed:
        base = base.rsplit(":", 1)[-1]
    return base


@dataclass(frozen=True)
class RepositorySpec:
    """One repository entry: where it comes from and what it follows."""

    url: str
    branch: str | None = None
    pinned_ref: str | None = None
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", repo_name_from_url(self.url))

    @property
    def is_pinned(self) -> bool:
        return self.pinned_ref is not None

    def branch_for(self, workspace_name: str) -> str:
        """Branch the checkout follows inside ``workspace_name``."""
        return self.branch or workspace_name

    def describe(self, workspace_name: str | None = None) -> str:
        branch = self.branch or (workspace_name if workspace_name else "<workspace>")
        text = f"{self.name}@{branch}"
        if self.pinned_ref:
            text += f" (pinned {self.pinned_ref})"
        return text

    def to_record(self) -> dict:
        """Serialise for the JSON configuration store."""
        return {"url": self.url, "branch": self.branch, "ref": self.pinned_ref}

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "branch": self.branch,
            "pinned_ref": self.pinned_ref,
        }


@dataclass(frozen=True)
class ResolvedSpec:
    """A repository spec together with the tier it was taken from."""

    spec: RepositorySpec
    tier: ConfigTier


# =============================================================================
# Checkouts and central repositories
# =============================================================================


class CheckoutState(StrEnum):
    """Lifecycle state of one repository checkout inside a workspace."""

    ABSENT = "absent"
    LINKED = "linked"
    TRACKING = "tracking"
    PINNED = "pinned"
    BROKEN = "broken"


class BrokenReason(StrEnum):
    """Why a checkout is considered broken."""

    NOT_A_CHECKOUT = "not_a_checkout"
    STANDALONE = "standalone"
    MISSING_GITDIR = "missing_gitdir"
    MISSING_CENTRAL = "missing_central"
    UNRESOLVABLE_HEAD = "unresolvable_head"
    NO_COMMITS = "no_commits"
    FOREIGN_GITDIR = "foreign_gitdir"

    @property
    def description(self) -> str:
        return {
            BrokenReason.NOT_A_CHECKOUT: "directory is not a git checkout",
            BrokenReason.STANDALONE: "standalone repository instead of a linked worktree",
            BrokenReason.MISSING_GITDIR: "worktree metadata points to a missing directory",
            BrokenReason.MISSING_CENTRAL: "central repository is missing",
            BrokenReason.UNRESOLVABLE_HEAD: "HEAD cannot be resolved",
            BrokenReason.NO_COMMITS: "uninitialized, no commits",
            BrokenReason.FOREIGN_GITDIR: "worktree metadata belongs to another checkout",
        }[self]


@dataclass(frozen=True)
class CentralRepository:
    """Shared backing object store for every checkout of one URL."""

    name: str
    url: str
    path: Path

    def worktree_admin_dir(self) -> Path:
        """Directory git keeps per-worktree metadata in."""
        return self.path / "worktrees"


@dataclass
class RepositoryCheckout:
    """A repository's linked working tree inside one workspace."""

    path: Path
    spec: RepositorySpec
    state: CheckoutState = CheckoutState.ABSENT
    central: CentralRepository | None = None
    broken_reason: BrokenReason | None = None

    @property
    def name(self) -> str:
        return self.spec.name


@dataclass
class Workspace:
    """A named set of repository checkouts under one directory."""

    name: str
    root_path: Path
    repositories: dict[str, RepositoryCheckout] = field(default_factory=dict)


# =============================================================================
# Results and reports
# =============================================================================


@dataclass
class OperationResult:
    """Result of one per-repository operation inside a batch."""

    name: str
    path: Path
    operation: str
    success: bool
    message: str = ""
    error: str = ""
    warning: bool = False
    exit_code: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "operation": self.operation,
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "warning": self.warning,
        }


@dataclass
class RepositoryState:
    """Status line for one repository of a workspace."""

    name: str
    path: Path
    ref_label: str = ""
    dirty: bool = False
    state: CheckoutState = CheckoutState.LINKED
    broken_reason: BrokenReason | None = None
    detached: bool = False

    @property
    def marker(self) -> str:
        if self.state == CheckoutState.BROKEN and self.broken_reason is not None:
            return f"[broken: {self.broken_reason.description}]"
        if self.state == CheckoutState.ABSENT:
            return "[missing]"
        return "[modified]" if self.dirty else "[clean]"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "ref": self.ref_label,
            "dirty": self.dirty,
            "state": self.state.value,
            "broken_reason": self.broken_reason.value if self.broken_reason else None,
            "detached": self.detached,
        }


@dataclass
class WorkspaceStatus:
    """All repository states of one workspace."""

    name: str
    path: Path
    repositories: list[RepositoryState] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "repositories": [r.to_dict() for r in self.repositories],
        }


@dataclass
class RepairReport:
    """What ``repair`` found and reconstructed."""

    workspace: str
    repository: str
    reason: BrokenReason | None
    actions: list[str] = field(default_factory=list)
    state: CheckoutState = CheckoutState.LINKED

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reason"] = self.reason.value if self.reason else None
        data["state"] = self.state.value
        return data
