"""Central repositories and the worktrees linked into them."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

from loguru import logger

from .errors import (
    DamagedCentralError,
    GitCommandError,
    LinkConflictError,
    RefNotFoundError,
    SyncConflictError,
)
from .git import GitOperations, read_gitdir_pointer
from .layout import RootLayout
from .models import CentralRepository, CheckoutState, RepositoryCheckout, RepositorySpec


class RepositoryRegistry:
    """Owns ``repos/<name>``: one bare clone per repository, shared by all workspaces."""

    def __init__(self, layout: RootLayout):
        self.layout = layout

    def central_for(self, spec: RepositorySpec) -> CentralRepository:
        return CentralRepository(
            name=spec.name, url=spec.url, path=self.layout.central_path(spec.name)
        )

    def is_valid(self, central: CentralRepository) -> bool:
        """A central repository exists and git recognises it as a bare repository."""
        return central.path.is_dir() and GitOperations(central.path).is_bare()

    def has_linked_checkouts(self, central: CentralRepository) -> bool:
        admin = central.worktree_admin_dir()
        return admin.is_dir() and any(admin.iterdir())

    def ensure_central(
        self, spec: RepositorySpec, refresh: bool = True, salvage: bool = False
    ) -> CentralRepository:
        """Clone the central repository if needed, otherwise optionally fetch it.

        Clones land in a temporary sibling directory and are renamed into place
        once complete, so an interrupted clone never looks like a valid one.

        An invalid central repository that checkouts still link into is never
        deleted: it raises DamagedCentralError, or with ``salvage`` is moved
        under .workspace/broken/ before cloning afresh.
        """
        central = self.central_for(spec)
        if self.is_valid(central):
            existing_url = GitOperations(central.path).remote_url()
            if existing_url and existing_url != spec.url:
                logger.warning(
                    "{}: central repository tracks {}, configuration says {}",
                    spec.name,
                    existing_url,
                    spec.url,
                )
            if refresh:
                self.refresh(central)
            return central

        if central.path.exists() or central.path.is_symlink():
            self._clear_invalid(central, salvage)

        self.layout.repos_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{spec.name}.partial-", dir=self.layout.repos_dir))
        try:
            clone_dest = staging / "clone"
            logger.info("{}: cloning {}", spec.name, spec.url)
            # relative local URLs are relative to the root
            GitOperations(self.layout.root).clone_bare(spec.url, clone_dest)
            ops = GitOperations(clone_dest)
            ops.configure_remote_tracking()
            ops.fetch()
            clone_dest.rename(central.path)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return central

    def _clear_invalid(self, central: CentralRepository, salvage: bool) -> None:
        path = central.path
        is_real_dir = path.is_dir() and not path.is_symlink()
        if is_real_dir and self.has_linked_checkouts(central):
            if not salvage:
                raise DamagedCentralError(
                    f"{path} is damaged but checkouts still link into it; "
                    f"run 'workspace repair <workspace> {central.name}'",
                    repository=central.name,
                    operation="clone",
                )
            backup = self.layout.backup_path(f"central-{central.name}")
            backup.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(backup))
            logger.warning("{}: moved damaged central repository to {}", central.name, backup)
            return

        logger.warning("{}: discarding incomplete central repository {}", central.name, path)
        if is_real_dir:
            shutil.rmtree(path)
        else:
            path.unlink()

    def refresh(self, central: CentralRepository) -> None:
        """Fetch remote-tracking data into the central repository."""
        logger.debug("{}: fetching", central.name)
        GitOperations(central.path).fetch()

    # -------------------------------------------------------------------------
    # Linked checkouts
    # -------------------------------------------------------------------------

    def link_checkout(
        self,
        central: CentralRepository,
        workspace_path: Path,
        spec: RepositorySpec,
        workspace_name: str,
    ) -> RepositoryCheckout:
        """Create ``workspace_path/<name>`` as a worktree of ``central``.

        The checkout is placed on ``spec.branch`` (else the workspace name); a
        branch that exists nowhere is created from the default branch. A
        pinned spec is then detached at its reference.
        """
        target = workspace_path / spec.name
        if target.exists() or target.is_symlink():
            if target.is_dir() and not any(target.iterdir()):
                target.rmdir()
            else:
                raise LinkConflictError(
                    f"{target} already exists and is not a linked checkout",
                    repository=spec.name,
                    operation="link",
                )

        workspace_path.mkdir(parents=True, exist_ok=True)
        ops = GitOperations(central.path)
        checkout = RepositoryCheckout(
            path=target, spec=spec, state=CheckoutState.LINKED, central=central
        )
        branch = spec.branch_for(workspace_name)
        if spec.pinned_ref is not None:
            self._link_pinned(ops, checkout, branch)
        else:
            self._link_branch(ops, checkout, branch)
        logger.info("{}: linked at {}", spec.name, target)
        return checkout

    def _link_pinned(self, ops: GitOperations, checkout: RepositoryCheckout, branch: str) -> None:
        ref = checkout.spec.pinned_ref
        if ops.rev_parse(ref) is None:
            raise RefNotFoundError(
                f"reference {ref!r} not found",
                repository=checkout.name,
                operation="pin",
            )
        self._link_branch(ops, checkout, branch)
        # a detached worktree no longer holds the branch, so other workspaces may use it
        GitOperations(checkout.path).checkout_detached(ref)
        checkout.state = CheckoutState.PINNED

    def _link_branch(self, ops: GitOperations, checkout: RepositoryCheckout, branch: str) -> None:
        remote_ref = f"origin/{branch}"
        has_remote = ops.remote_branch_exists(branch)

        if ops.local_branch_exists(branch):
            ops.worktree_add(checkout.path, branch)
            if has_remote:
                self._follow_remote(GitOperations(checkout.path), remote_ref)
        elif has_remote:
            ops.worktree_add(checkout.path, branch, start_point=remote_ref, track=True)
        else:
            start_point = self._default_start_point(ops)
            if start_point is None:
                raise RefNotFoundError(
                    f"branch {branch!r} not found and no default branch to start from",
                    repository=checkout.name,
                    operation="link",
                )
            logger.warning(
                "{}: branch {} does not exist upstream, creating it from {}",
                checkout.name,
                branch,
                start_point,
            )
            ops.worktree_add(checkout.path, branch, start_point=start_point, track=False)
        checkout.state = CheckoutState.TRACKING

    def _default_start_point(self, ops: GitOperations) -> str | None:
        default = ops.default_branch()
        if default and ops.remote_branch_exists(default):
            return f"origin/{default}"
        if default and ops.local_branch_exists(default):
            return default
        return None

    def _follow_remote(self, wt: GitOperations, remote_ref: str) -> None:
        # The bare clone's local heads are only as fresh as the initial clone.
        wt.set_upstream(remote_ref)
        if wt.is_ancestor("HEAD", remote_ref):
            wt.merge_ff_only(remote_ref)

    def unlink_checkout(self, checkout: RepositoryCheckout) -> None:
        """Remove a checkout; the central repository is left as it is."""
        central = checkout.central or self.central_for(checkout.spec)
        pointer = read_gitdir_pointer(checkout.path)
        linked = pointer is not None and pointer.is_dir() and self.is_valid(central)

        if linked:
            try:
                GitOperations(central.path).worktree_remove(checkout.path)
            except GitCommandError as e:
                logger.warning("{}: git worktree remove failed ({}), deleting", checkout.name, e.stderr)
        if checkout.path.exists() or checkout.path.is_symlink():
            if checkout.path.is_dir() and not checkout.path.is_symlink():
                shutil.rmtree(checkout.path)
            else:
                checkout.path.unlink()
        if self.is_valid(central):
            GitOperations(central.path).worktree_prune()
        checkout.state = CheckoutState.ABSENT
        logger.info("{}: unlinked {}", checkout.name, checkout.path)

    # -------------------------------------------------------------------------
    # Updating
    # -------------------------------------------------------------------------

    def fast_forward(self, checkout: RepositoryCheckout) -> str | None:
        """Fast-forward a tracking checkout to its upstream.

        Returns a short description of what happened, or None when the branch
        has no upstream to follow. Raises SyncConflictError, leaving the
        working tree untouched, when a fast-forward is impossible.
        """
        wt = GitOperations(checkout.path)
        branch = wt.current_branch()
        if branch is None:
            raise SyncConflictError(
                "HEAD is detached, expected a branch",
                repository=checkout.name,
                operation="sync",
            )

        upstream = wt.upstream()
        if upstream is None and wt.remote_branch_exists(branch):
            upstream = f"origin/{branch}"
        if upstream is None:
            return None

        head = wt.rev_parse("HEAD")
        target = wt.rev_parse(upstream)
        if target is None:
            return None
        if head == target:
            return "already up to date"
        if wt.is_ancestor(upstream, "HEAD"):
            return f"ahead of {upstream}"
        if not wt.is_ancestor("HEAD", upstream):
            raise SyncConflictError(
                f"{branch} has diverged from {upstream}; fast-forward not possible",
                repository=checkout.name,
                operation="sync",
            )
        try:
            wt.merge_ff_only(upstream)
        except GitCommandError as e:
            raise SyncConflictError(
                f"fast-forward to {upstream} refused: {e.stderr}",
                repository=checkout.name,
                operation="sync",
            ) from e
        return f"fast-forwarded {wt.short_sha(head)}..{wt.short_sha(target)}"
