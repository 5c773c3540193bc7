"""Workspace lifecycle: switch, sync, clean, repair."""

from __future__ import annotations

import shutil
from pathlib import Path

from loguru import logger

from .config import ConfigResolver, ConfigStore, validate_workspace_name
from .errors import GitCommandError, NotFoundError, WorkspaceError
from .git import GitOperations
from .health import diagnose, probe_checkout
from .layout import WORKSPACE_BRANCH_PREFIX, WORKSPACE_MARKER, RootLayout
from .models import (
    CheckoutState,
    OperationResult,
    RepairReport,
    RepositoryCheckout,
    RepositorySpec,
    Workspace,
)
from .registry import RepositoryRegistry


class WorkspaceManager:
    """Creates, updates and removes workspaces under one root."""

    def __init__(
        self,
        layout: RootLayout,
        store: ConfigStore,
        resolver: ConfigResolver | None = None,
        registry: RepositoryRegistry | None = None,
    ):
        self.layout = layout
        self.store = store
        self.resolver = resolver or ConfigResolver(store)
        self.registry = registry or RepositoryRegistry(layout)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def list(self) -> list[str]:
        """Names of all workspaces present on disk."""
        return self.layout.list_workspaces()

    def exists(self, name: str) -> bool:
        return name in self.list()

    def current(self, cwd: Path | None = None) -> str | None:
        return self.layout.current_workspace(cwd)

    def _require(self, name: str) -> Path:
        if not self.exists(name):
            raise NotFoundError(f"Workspace not found: {name}")
        return self.layout.workspace_path(name)

    def inspect(self, path: Path, spec: RepositorySpec) -> RepositoryCheckout:
        """Current state of the checkout of ``spec`` at ``path``."""
        checkout = RepositoryCheckout(
            path=path, spec=spec, central=self.registry.central_for(spec)
        )
        probe = probe_checkout(path)
        if not probe.exists:
            checkout.state = CheckoutState.ABSENT
            return checkout
        reason = diagnose(probe)
        if reason is not None:
            checkout.state = CheckoutState.BROKEN
            checkout.broken_reason = reason
        elif spec.is_pinned:
            checkout.state = CheckoutState.PINNED
        else:
            checkout.state = CheckoutState.TRACKING
        return checkout

    def load(self, name: str) -> Workspace:
        """The workspace with its configured checkouts, then any unconfigured ones."""
        path = self._require(name)
        workspace = Workspace(name=name, root_path=path)
        for spec in self.resolver.resolve(name):
            workspace.repositories[spec.name] = self.inspect(path / spec.name, spec)
        for child in sorted(path.iterdir()):
            if child.name == WORKSPACE_MARKER or not child.is_dir():
                continue
            if child.name in workspace.repositories:
                continue
            if not (child / ".git").exists():
                continue
            spec = RepositorySpec(url=str(child), name=child.name)
            workspace.repositories[child.name] = self.inspect(child, spec)
        return workspace

    # -------------------------------------------------------------------------
    # switch
    # -------------------------------------------------------------------------

    def superproject(self) -> GitOperations | None:
        """The root's own repository, when the root is a git work tree with a commit."""
        if not (self.layout.root / ".git").exists():
            return None
        ops = GitOperations(self.layout.root)
        return ops if ops.rev_parse("HEAD") else None

    def _create_workspace_dir(self, name: str) -> Path:
        path = self.layout.workspace_path(name)
        self.layout.config_dir.mkdir(parents=True, exist_ok=True)
        superproject = self.superproject()
        if superproject is None:
            path.mkdir(parents=True, exist_ok=True)
            logger.info("Created workspace {}", name)
        else:
            # the workspace is itself a worktree of the superproject on workspace/<name>
            branch = WORKSPACE_BRANCH_PREFIX + name
            path.parent.mkdir(parents=True, exist_ok=True)
            if superproject.local_branch_exists(branch):
                superproject.worktree_add(path, branch)
            else:
                superproject.worktree_add(path, branch, start_point="HEAD")
            logger.info("Created workspace {} on superproject branch {}", name, branch)
        (path / WORKSPACE_MARKER).write_text(name + "\n", encoding="utf-8")
        return path

    def _remove_workspace_dir(self, path: Path) -> None:
        superproject = self.superproject()
        if superproject is not None and (path / ".git").is_file():
            try:
                superproject.worktree_remove(path)
            except GitCommandError as e:
                logger.warning("git worktree remove {} failed ({}), deleting", path, e.stderr)
        shutil.rmtree(path, ignore_errors=True)
        if superproject is not None:
            superproject.worktree_prune()
        self._remove_empty_parents(path)

    def switch(self, name: str) -> list[OperationResult]:
        """Create the workspace if needed and link every missing checkout.

        Existing checkouts are never touched. A failure for one repository is
        recorded and the remaining repositories are still processed; a new
        workspace in which every repository failed is removed again.
        """
        validate_workspace_name(name)
        specs = self.resolver.resolve(name)

        created = not self.exists(name)
        path = self._create_workspace_dir(name) if created else self.layout.workspace_path(name)
        linked: list[RepositoryCheckout] = []
        results: list[OperationResult] = []
        try:
            for spec in specs:
                results.append(self._switch_one(name, path, spec, linked))
        except BaseException:
            if created:
                self._rollback(name, path, linked)
            raise
        if created and results and not any(r.success for r in results):
            self._rollback(name, path, linked)
        return results

    def _switch_one(
        self,
        name: str,
        path: Path,
        spec: RepositorySpec,
        linked: list[RepositoryCheckout],
    ) -> OperationResult:
        target = path / spec.name
        current = self.inspect(target, spec)
        if current.state == CheckoutState.BROKEN:
            return OperationResult(
                name=spec.name,
                path=target,
                operation="switch",
                success=False,
                error=f"broken ({current.broken_reason.description}); "
                f"run 'workspace repair {name} {spec.name}'",
            )
        if current.state != CheckoutState.ABSENT:
            return OperationResult(
                name=spec.name,
                path=target,
                operation="switch",
                success=True,
                message="exists, skipping",
            )

        try:
            central = self.registry.ensure_central(spec)
            checkout = self.registry.link_checkout(central, path, spec, name)
        except WorkspaceError as e:
            logger.warning("{}: switch failed: {}", spec.name, e)
            return OperationResult(
                name=spec.name,
                path=target,
                operation="switch",
                success=False,
                error=str(e),
                exit_code=int(e.exit_code),
            )
        linked.append(checkout)
        if checkout.state == CheckoutState.PINNED:
            message = f"pinned at {spec.pinned_ref}"
        else:
            message = f"tracking {spec.branch_for(name)}"
        return OperationResult(
            name=spec.name, path=target, operation="switch", success=True, message=message
        )

    def _rollback(self, name: str, path: Path, linked: list[RepositoryCheckout]) -> None:
        logger.warning("Rolling back partially created workspace {}", name)
        for checkout in linked:
            try:
                self.registry.unlink_checkout(checkout)
            except WorkspaceError as e:
                logger.error("{}: rollback unlink failed: {}", checkout.name, e)
        self._remove_workspace_dir(path)

    # -------------------------------------------------------------------------
    # sync
    # -------------------------------------------------------------------------

    def sync(self, name: str) -> list[OperationResult]:
        """Fast-forward every tracking checkout of the workspace."""
        workspace = self.load(name)
        refreshed: set[str] = set()
        results: list[OperationResult] = []
        for checkout in workspace.repositories.values():
            results.append(self._sync_one(checkout, refreshed))
        return results

    def _sync_one(self, checkout: RepositoryCheckout, refreshed: set[str]) -> OperationResult:
        result = OperationResult(
            name=checkout.name, path=checkout.path, operation="sync", success=True
        )
        if checkout.state == CheckoutState.ABSENT:
            result.warning = True
            result.message = "missing, run 'workspace switch' to create it"
            logger.warning("{}: checkout missing, skipping", checkout.name)
            return result
        if checkout.state == CheckoutState.BROKEN:
            result.success = False
            result.error = f"broken ({checkout.broken_reason.description}); run 'workspace repair'"
            return result
        if checkout.state == CheckoutState.PINNED:
            result.warning = True
            result.message = f"{checkout.name} is pinned, skipping"
            logger.warning("{}: pinned at {}, skipping", checkout.name, checkout.spec.pinned_ref)
            return result

        try:
            central = checkout.central
            if central is not None and central.name not in refreshed:
                if self.registry.is_valid(central):
                    self.registry.refresh(central)
                refreshed.add(central.name)
            message = self.registry.fast_forward(checkout)
        except WorkspaceError as e:
            logger.warning("{}: sync failed: {}", checkout.name, e)
            result.success = False
            result.error = str(e)
            result.exit_code = int(e.exit_code)
            return result

        if message is None:
            result.warning = True
            branch = GitOperations(checkout.path).current_branch()
            result.message = f"{branch} has no upstream, skipping"
        else:
            result.message = message
        return result

    # -------------------------------------------------------------------------
    # clean
    # -------------------------------------------------------------------------

    def clean(self, name: str, confirmed: bool) -> list[OperationResult] | None:
        """Remove a workspace and all of its checkouts.

        Nothing happens unless ``confirmed`` is true; returns None in that case.
        """
        workspace = self.load(name)
        if not confirmed:
            logger.info("Clean of {} not confirmed", name)
            return None

        results: list[OperationResult] = []
        for checkout in workspace.repositories.values():
            if checkout.state == CheckoutState.ABSENT:
                continue
            result = OperationResult(
                name=checkout.name, path=checkout.path, operation="clean", success=True
            )
            try:
                self.registry.unlink_checkout(checkout)
                result.message = "removed"
            except WorkspaceError as e:
                result.success = False
                result.error = str(e)
            results.append(result)

        self._remove_workspace_dir(workspace.root_path)
        self.store.drop_workspace(name)
        logger.info("Workspace removed: {}", name)
        return results

    def _remove_empty_parents(self, path: Path) -> None:
        # workspace names with slashes leave intermediate directories behind
        worktrees = self.layout.worktrees_dir
        parent = path.parent
        while parent != worktrees and worktrees in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    # -------------------------------------------------------------------------
    # repair
    # -------------------------------------------------------------------------

    def repair(self, name: str, repository: str) -> RepairReport:
        """Rebuild one checkout from its (re-ensured) central repository."""
        path = self._require(name)
        spec = self.resolver.find(name, repository)
        if spec is None:
            raise NotFoundError(f"Repository {repository!r} is not configured for workspace {name}")

        target = path / spec.name
        checkout = self.inspect(target, spec)
        report = RepairReport(
            workspace=name, repository=spec.name, reason=checkout.broken_reason
        )
        central = self.registry.central_for(spec)
        central_ok = self.registry.is_valid(central)

        if checkout.state in (CheckoutState.TRACKING, CheckoutState.PINNED) and central_ok:
            report.state = checkout.state
            report.actions.append("checkout is healthy, nothing to repair")
            return report

        if not central_ok:
            report.actions.append(f"central repository {central.path} missing or invalid, re-cloning")
            if central.path.is_dir() and self.registry.has_linked_checkouts(central):
                report.actions.append(
                    f"moving damaged central repository aside under {self.layout.config_dir / 'broken'}"
                )
        central = self.registry.ensure_central(spec, salvage=True)
        report.actions.append(f"central repository ready at {central.path}")

        if target.exists() or target.is_symlink():
            report.actions.append(self._discard(name, target))
        GitOperations(central.path).worktree_prune()

        rebuilt = self.registry.link_checkout(central, path, spec, name)
        report.state = rebuilt.state
        if rebuilt.state == CheckoutState.PINNED:
            report.actions.append(f"re-linked and pinned at {spec.pinned_ref}")
        else:
            report.actions.append(f"re-linked on branch {spec.branch_for(name)}")
        logger.info("{}: repaired in workspace {}", spec.name, name)
        return report

    def _discard(self, name: str, target: Path) -> str:
        """Get a broken checkout out of the way, keeping anything beyond a .git pointer."""
        if not target.is_dir() or target.is_symlink():
            target.unlink()
            return f"removed {target}"
        if all(p.name == ".git" and p.is_file() for p in target.iterdir()):
            shutil.rmtree(target)
            return f"removed broken checkout {target}"

        backup = self.layout.backup_path(f"{name}-{target.name}")
        backup.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(target), str(backup))
        return f"moved previous contents of {target} to {backup}"
