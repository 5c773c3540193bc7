"""Command-line interface."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .config import ConfigResolver, ConfigStore, make_spec
from .errors import ConfigError, ExitCode, NotFoundError, WorkspaceError
from .foreach import ForeachExecutor
from .formatters import OutputFormatter
from .layout import RootLayout, default_workspace_name, resolve_root
from .log import setup_logging
from .manager import WorkspaceManager
from .models import OperationResult, RepositorySpec
from .status import StatusReporter

# =============================================================================
# Application state
# =============================================================================


@dataclass
class AppState:
    """Objects shared by every command of one invocation."""

    layout: RootLayout
    store: ConfigStore
    resolver: ConfigResolver
    manager: WorkspaceManager

    @classmethod
    def for_root(cls, root: Path) -> AppState:
        layout = RootLayout(root)
        store = ConfigStore(layout)
        resolver = ConfigResolver(store)
        return cls(
            layout=layout,
            store=store,
            resolver=resolver,
            manager=WorkspaceManager(layout, store, resolver),
        )

    def workspace_or_default(self, name: str | None) -> str:
        """``name``, else the workspace containing the cwd, else the default."""
        return name or self.manager.current() or default_workspace_name()


app = typer.Typer(
    name="workspace",
    help="Manage sets of git worktrees across many repositories.",
    no_args_is_help=True,
)
config_app = typer.Typer(
    name="config",
    help="Show and edit repository configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"workspace {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output to stderr",
    ),
    root: Path = typer.Option(
        None,
        "--root",
        help="Superproject root (default: $GIT_WORKSPACE_ROOT or discovered from the cwd)",
    ),
):
    """workspace: one directory per branch, one worktree per repository."""
    setup_logging(verbose)
    ctx.obj = AppState.for_root(resolve_root(root))


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console()
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


@contextmanager
def handle_errors() -> Iterator[None]:
    """Report a WorkspaceError on stderr and exit with its code."""
    try:
        yield
    except WorkspaceError as e:
        Console(stderr=True).print(f"[red]Error:[/] {escape(str(e))}", soft_wrap=True)
        raise typer.Exit(int(e.exit_code)) from e


def exit_for_results(results: list[OperationResult]) -> None:
    """Exit with the code of the first failed result, if any."""
    for result in results:
        if not result.success:
            raise typer.Exit(result.exit_code or int(ExitCode.FAILURE))


# =============================================================================
# Workspace commands
# =============================================================================


def _switch(state: AppState, name: str | None, json_output: bool, initializing: bool = False) -> None:
    console, formatter = get_console_and_formatter(json_output)
    with handle_errors():
        name = state.workspace_or_default(name)
        if initializing and not json_output:
            console.print(f"Initializing workspace: [bold]{escape(name)}[/]")
        if not json_output:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                progress.add_task(f"Preparing workspace {name}...", total=None)
                results = state.manager.switch(name)
        else:
            results = state.manager.switch(name)

    formatter.print_operation_results(results, "switch")
    if not json_output:
        done = "Workspace initialized" if initializing else "Switched to workspace"
        console.print(f"\n{done}: [bold]{escape(name)}[/]")
        console.print(str(state.layout.workspace_path(name)), markup=False, highlight=False, soft_wrap=True)
    exit_for_results(results)


@app.command()
def switch(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Workspace name (default: current, else main)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Create a workspace, or add missing checkouts to an existing one."""
    _switch(ctx.obj, name, json_output)


@app.command(name="init")
def init(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Workspace name (default: current, else main)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Alias of switch."""
    _switch(ctx.obj, name, json_output, initializing=True)


@app.command()
def sync(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Workspace name (default: current, else main)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Fetch and fast-forward every tracking checkout of a workspace."""
    state: AppState = ctx.obj
    console, formatter = get_console_and_formatter(json_output)
    with handle_errors():
        name = state.workspace_or_default(name)
        if not json_output:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                progress.add_task(f"Syncing workspace {name}...", total=None)
                results = state.manager.sync(name)
        else:
            results = state.manager.sync(name)

    formatter.print_operation_results(results, "sync")
    exit_for_results(results)


@app.command()
def status(
    ctx: typer.Context,
    name: str = typer.Argument(None, help="Only this workspace (default: all)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show branch and working tree state of every checkout."""
    state: AppState = ctx.obj
    _, formatter = get_console_and_formatter(json_output)
    with handle_errors():
        reporter = StatusReporter(state.manager)
        statuses = reporter.report([name] if name else None)
    formatter.print_status_list(statuses)


@app.command(
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True},
)
def foreach(
    ctx: typer.Context,
    command: list[str] = typer.Argument(..., help="Command to run in each repository"),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Do not print a header before each repository",
    ),
):
    """Run a command in every checkout of the current workspace.

    The variables $name, $path, $displaypath and $toplevel are set for each run.
    """
    state: AppState = ctx.obj
    console = Console()
    with handle_errors():
        executor = ForeachExecutor(state.manager, console)
        code = executor.run(state.manager.current(), command, quiet=quiet)
    raise typer.Exit(code)


@app.command(name="list")
def list_workspaces(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    paths_only: bool = typer.Option(
        False,
        "--paths",
        "-p",
        help="Print workspace paths instead of names",
    ),
):
    """List all workspaces."""
    state: AppState = ctx.obj
    _, formatter = get_console_and_formatter(json_output)
    names = state.manager.list()
    paths = {n: state.layout.workspace_path(n) for n in names}
    formatter.print_workspace_list(
        names, paths, current=state.manager.current(), show_paths=paths_only
    )


@app.command()
def clean(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Workspace to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Delete a workspace and all of its checkouts."""
    state: AppState = ctx.obj
    console, formatter = get_console_and_formatter(json_output)
    with handle_errors():
        if not state.manager.exists(name):
            raise NotFoundError(f"Workspace not found: {name}")
        if not yes and not typer.confirm(f"Delete workspace: {name}?", default=False):
            console.print("Aborted")
            raise typer.Exit()
        results = state.manager.clean(name, confirmed=True)

    formatter.print_operation_results(results, "clean")
    if not json_output:
        console.print(f"Workspace removed: [bold]{escape(name)}[/]")
    exit_for_results(results)


@app.command()
def repair(
    ctx: typer.Context,
    workspace: str = typer.Argument(..., help="Workspace containing the checkout"),
    repository: str = typer.Argument(..., help="Repository name"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Rebuild a broken checkout."""
    state: AppState = ctx.obj
    console, formatter = get_console_and_formatter(json_output)
    if not json_output:
        console.print(f"Attempting to repair [cyan]{escape(repository)}[/] in {escape(workspace)}")
    with handle_errors():
        report = state.manager.repair(workspace, repository)
    formatter.print_repair_report(report)


@app.command(name="help")
def help_command(ctx: typer.Context):
    """Show this message and exit."""
    typer.echo(ctx.parent.get_help())


# =============================================================================
# config commands
# =============================================================================


def _spec_from_args(
    known: list[RepositorySpec],
    base: Path,
    url_or_name: str,
    branch: str | None,
    ref: str | None,
) -> RepositorySpec:
    """Build a spec; a bare repository name takes its URL from ``known``.

    A bare name that is neither configured nor an existing path under ``base``
    is rejected instead of being stored as a relative URL.
    """
    url = url_or_name
    if url_or_name and "/" not in url_or_name and ":" not in url_or_name:
        matches = [spec.url for spec in known if spec.name == url_or_name]
        if matches:
            url = matches[-1]
        elif not (base / url_or_name).exists():
            raise NotFoundError(
                f"Unknown repository {url_or_name!r}: not configured and not a path; pass its URL"
            )
    spec = make_spec(url, branch, ref)
    if isinstance(spec, ConfigError):
        raise spec
    return spec


@config_app.command(name="set")
def config_set(
    ctx: typer.Context,
    workspace: str = typer.Argument(..., help="Workspace to configure"),
    url_or_name: str = typer.Argument(..., help="Repository URL, or name of a configured repository"),
    branch: str = typer.Argument(None, help="Branch to follow (default: workspace name)"),
    ref: str = typer.Argument(None, help="Pin to this tag or commit"),
):
    """Add or replace a repository for one workspace."""
    state: AppState = ctx.obj
    console = Console()
    with handle_errors():
        spec = _spec_from_args(state.resolver.resolve(workspace), state.layout.root, url_or_name, branch, ref)
        state.store.set_override(workspace, spec)
    console.print(f"Set repository config for [bold]{escape(workspace)}[/]: {escape(spec.describe(workspace))}")


@config_app.command(name="set-default")
def config_set_default(
    ctx: typer.Context,
    url_or_name: str = typer.Argument(..., help="Repository URL, or name of a default repository"),
    branch: str = typer.Argument(None, help="Branch to follow (default: workspace name)"),
    ref: str = typer.Argument(None, help="Pin to this tag or commit"),
):
    """Add or replace a repository in the default template."""
    state: AppState = ctx.obj
    console = Console()
    with handle_errors():
        spec = _spec_from_args(state.store.read_defaults(), state.layout.root, url_or_name, branch, ref)
        state.store.set_default(spec)
    console.print(f"Set default repository config: {escape(spec.describe())}")


@config_app.command(name="unset")
def config_unset(
    ctx: typer.Context,
    workspace: str = typer.Argument(..., help="Workspace to edit"),
    name: str = typer.Argument(..., help="Repository name"),
):
    """Remove a repository from one workspace's configuration."""
    state: AppState = ctx.obj
    console = Console()
    with handle_errors():
        if not state.store.unset_override(workspace, name):
            raise NotFoundError(f"{name} is not configured for workspace {workspace}")
    console.print(f"Removed {escape(name)} from workspace {escape(workspace)}")


@config_app.command(name="show")
def config_show(
    ctx: typer.Context,
    workspace: str = typer.Argument(None, help="Workspace (default: current, else main)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show each configuration tier and the effective repository list."""
    state: AppState = ctx.obj
    _, formatter = get_console_and_formatter(json_output)
    with handle_errors():
        workspace = state.workspace_or_default(workspace)
        tiers = {tier: state.store.read_tier(tier, workspace) for tier in ConfigResolver.TIERS}
        resolved = state.resolver.resolve_detailed(workspace)
    formatter.print_config(workspace, tiers, resolved)


@config_app.command(name="import")
def config_import(
    ctx: typer.Context,
    workspace: str = typer.Argument(..., help="Workspace to import into"),
    file: Path = typer.Argument(None, help="Legacy file (default: <root>/workspace.conf)"),
):
    """Copy a legacy workspace.conf into a workspace's configuration."""
    state: AppState = ctx.obj
    console = Console()
    source = file or state.layout.legacy_file
    console.print(f"Importing configuration from {escape(str(source))} into {escape(workspace)}", soft_wrap=True)
    with handle_errors():
        specs = state.store.import_legacy(workspace, source)
    for spec in specs:
        console.print(f"  [cyan]{escape(spec.describe(workspace))}[/]")
    console.print(f"Import complete: {len(specs)} repositories")


if __name__ == "__main__":
    app()
