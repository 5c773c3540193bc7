"""Read-only status reporting across workspaces."""

from __future__ import annotations

from loguru import logger

from .errors import GitCommandError
from .git import GitOperations
from .manager import WorkspaceManager
from .models import CheckoutState, RepositoryCheckout, RepositoryState, WorkspaceStatus

_SHA_CHARS = frozenset("0123456789abcdef")


def short_ref(ref: str) -> str:
    """Abbreviate full object names; leave tags and branches alone."""
    if len(ref) >= 12 and set(ref.lower()) <= _SHA_CHARS:
        return ref[:7]
    return ref


class StatusReporter:
    """Builds :class:`WorkspaceStatus` values without modifying anything."""

    def __init__(self, manager: WorkspaceManager):
        self.manager = manager

    def report(self, names: list[str] | None = None) -> list[WorkspaceStatus]:
        """Status of ``names``, or of every workspace on disk."""
        if names is None:
            names = self.manager.list()
        return [self.workspace_status(name) for name in names]

    def workspace_status(self, name: str) -> WorkspaceStatus:
        workspace = self.manager.load(name)
        status = WorkspaceStatus(name=name, path=workspace.root_path)
        for checkout in workspace.repositories.values():
            status.repositories.append(self.repository_state(checkout))
        return status

    def repository_state(self, checkout: RepositoryCheckout) -> RepositoryState:
        state = RepositoryState(
            name=checkout.name,
            path=checkout.path,
            state=checkout.state,
            broken_reason=checkout.broken_reason,
        )
        if checkout.state in (CheckoutState.ABSENT, CheckoutState.BROKEN):
            return state

        wt = GitOperations(checkout.path)
        branch = wt.current_branch()
        if branch is not None:
            state.ref_label = branch
        else:
            state.detached = True
            if checkout.spec.pinned_ref:
                state.ref_label = short_ref(checkout.spec.pinned_ref)
            else:
                state.ref_label = wt.short_sha() or "HEAD"

        try:
            state.dirty = wt.is_dirty()
        except GitCommandError as e:
            logger.warning("{}: cannot read working tree status: {}", checkout.name, e.stderr)
        return state
