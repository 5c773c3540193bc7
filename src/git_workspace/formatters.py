"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import CheckoutState, ConfigTier

if TYPE_CHECKING:
    from .models import (
        OperationResult,
        RepairReport,
        RepositorySpec,
        RepositoryState,
        ResolvedSpec,
        WorkspaceStatus,
    )

TIER_HEADINGS = {
    ConfigTier.WORKSPACE_OVERRIDE: "Workspace-specific repositories:",
    ConfigTier.DEFAULT_TEMPLATE: "Default repositories (inherited):",
    ConfigTier.LEGACY_FILE: "Legacy configuration (from workspace.conf):",
}


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, data: dict) -> None:
        # no markup so brackets survive, soft wrap so long lines stay parseable
        self.console.print(
            json.dumps(data, indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    # -------------------------------------------------------------------------
    # status
    # -------------------------------------------------------------------------

    def print_status_list(self, statuses: list[WorkspaceStatus]):
        """Print status of every workspace."""
        if self.use_json:
            self._print_json({"workspaces": [s.to_dict() for s in statuses]})
            return
        if not statuses:
            self.console.print("No workspaces found")
            return
        for index, status in enumerate(statuses):
            if index:
                self.console.print()
            self._print_workspace_status(status)

    def _print_workspace_status(self, status: WorkspaceStatus):
        self.console.print(
            f"[bold]Workspace: {escape(status.name)}[/] [dim]({escape(str(status.path))})[/]",
            soft_wrap=True,
        )
        if not status.repositories:
            self.console.print("  [dim]no repositories configured[/]")
            return
        name_width = max(len(r.name) for r in status.repositories)
        ref_width = max(len(r.ref_label) for r in status.repositories)
        for repo in status.repositories:
            name = escape(repo.name.ljust(name_width))
            ref = escape(repo.ref_label.ljust(ref_width))
            self.console.print(f"  [cyan]{name}[/]  {ref}  {self._marker_display(repo)}", soft_wrap=True)

    def _marker_display(self, repo: RepositoryState) -> str:
        """Get the bracketed marker, coloured by state."""
        marker = escape(repo.marker)
        if repo.state == CheckoutState.BROKEN:
            return f"[red]{marker}[/]"
        if repo.state == CheckoutState.ABSENT:
            return f"[dim]{marker}[/]"
        if repo.dirty:
            return f"[yellow]{marker}[/]"
        return f"[green]{marker}[/]"

    # -------------------------------------------------------------------------
    # switch / sync / clean
    # -------------------------------------------------------------------------

    def print_operation_results(self, results: list[OperationResult], operation: str):
        """Print operation results."""
        if self.use_json:
            self._print_operation_json(results)
        else:
            self._print_operation_table(results, operation)

    def _print_operation_table(self, results: list[OperationResult], operation: str):
        """Print operation results as table."""
        if not results:
            self.console.print(f"[dim]No repositories to {operation}[/]")
            return

        table = Table(title=f"{operation.title()} Results")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Status", justify="center")
        table.add_column("Message", overflow="fold")

        success_count = 0
        for result in results:
            if not result.success:
                status = "[red]✗[/]"
                message = f"[red]{escape(result.error)}[/]" if result.error else "Failed"
            elif result.warning:
                success_count += 1
                status = "[yellow]![/]"
                message = f"[yellow]{escape(result.message)}[/]"
            else:
                success_count += 1
                status = "[green]✓[/]"
                message = escape(result.message) if result.message else "OK"
            table.add_row(escape(result.name), status, message)

        self.console.print(table)
        self.console.print(f"\n[bold]Success:[/] {success_count}/{len(results)}")

    def _print_operation_json(self, results: list[OperationResult]):
        """Print operation results as JSON."""
        self._print_json(
            {
                "results": [r.to_dict() for r in results],
                "summary": {
                    "total": len(results),
                    "success": sum(1 for r in results if r.success),
                    "failed": sum(1 for r in results if not r.success),
                    "warnings": sum(1 for r in results if r.warning),
                },
            }
        )

    # -------------------------------------------------------------------------
    # list
    # -------------------------------------------------------------------------

    def print_workspace_list(
        self,
        names: list[str],
        paths: dict[str, Path],
        current: str | None = None,
        show_paths: bool = False,
    ):
        """Print workspace names, marking the current one."""
        if self.use_json:
            self._print_json(
                {
                    "count": len(names),
                    "workspaces": [
                        {"name": n, "path": str(paths[n]), "current": n == current}
                        for n in names
                    ],
                }
            )
            return
        if not names:
            self.console.print("No workspaces found")
            return
        for name in names:
            text = str(paths[name]) if show_paths else name
            if name == current:
                self.console.print(f"* [bold green]{escape(text)}[/]", soft_wrap=True)
            else:
                self.console.print(f"  {escape(text)}", soft_wrap=True)

    # -------------------------------------------------------------------------
    # config show
    # -------------------------------------------------------------------------

    def print_config(
        self,
        workspace: str,
        tiers: dict[ConfigTier, list[RepositorySpec]],
        resolved: list[ResolvedSpec],
    ):
        """Print each tier's entries, then the effective list."""
        if self.use_json:
            self._print_json(
                {
                    "workspace": workspace,
                    "tiers": {
                        tier.label: [s.to_dict() for s in specs] for tier, specs in tiers.items()
                    },
                    "effective": [
                        {**r.spec.to_dict(), "source": r.tier.label} for r in resolved
                    ],
                }
            )
            return

        self.console.print(f"[bold]Configuration for workspace: {escape(workspace)}[/]\n")
        for tier, heading in TIER_HEADINGS.items():
            self.console.print(f"[bold]{escape(heading)}[/]")
            specs = tiers.get(tier, [])
            if not specs:
                self.console.print("  [dim](none)[/]")
            for spec in specs:
                self.console.print(f"  {self._spec_line(spec)}", soft_wrap=True)
            self.console.print()

        table = Table(title="Effective repositories")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Ref")
        table.add_column("Source", justify="center")
        table.add_column("URL", overflow="fold")
        for item in resolved:
            spec = item.spec
            branch = spec.branch or f"[dim]{escape(workspace)}[/]"
            table.add_row(
                escape(spec.name),
                branch,
                escape(spec.pinned_ref or "-"),
                item.tier.label,
                escape(spec.url),
            )
        self.console.print(table)

    def _spec_line(self, spec: RepositorySpec) -> str:
        parts = [f"[cyan]{escape(spec.name)}[/]", escape(spec.url)]
        if spec.branch:
            parts.append(f"branch={escape(spec.branch)}")
        if spec.pinned_ref:
            parts.append(f"ref={escape(spec.pinned_ref)}")
        return "  ".join(parts)

    # -------------------------------------------------------------------------
    # repair
    # -------------------------------------------------------------------------

    def print_repair_report(self, report: RepairReport):
        if self.use_json:
            self._print_json(report.to_dict())
            return
        if report.reason is not None:
            self.console.print(f"[yellow]Detected:[/] {escape(report.reason.description)}")
        for action in report.actions:
            self.console.print(f"  - {escape(action)}", soft_wrap=True)
        self.console.print(
            f"[bold]{escape(report.repository)}[/] in {escape(report.workspace)} is now "
            f"[green]{report.state.value}[/]"
        )
