"""Running a command in every checkout of a workspace."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from loguru import logger
from rich.console import Console

from .errors import NotInWorkspaceError
from .manager import WorkspaceManager
from .models import CheckoutState, RepositoryCheckout

COMMAND_NOT_FOUND = 127


def _inherits_stdout() -> bool:
    """True when child processes can write straight to our stdout."""
    try:
        sys.stdout.fileno()
    except (AttributeError, OSError, ValueError):
        return False
    return True


class ForeachExecutor:
    """Runs a command sequentially in each checkout, stopping at the first failure."""

    def __init__(self, manager: WorkspaceManager, console: Console):
        self.manager = manager
        self.console = console

    def environment(self, checkout: RepositoryCheckout, toplevel: Path, cwd: Path) -> dict:
        """Variables exported to the command for one checkout."""
        return {
            **os.environ,
            "name": checkout.name,
            "path": checkout.path.relative_to(toplevel).as_posix(),
            "displaypath": os.path.relpath(checkout.path, cwd),
            "toplevel": str(toplevel),
        }

    def run(
        self,
        workspace: str | None,
        command: list[str],
        quiet: bool = False,
        cwd: Path | None = None,
    ) -> int:
        """Run ``command`` in each checkout; return the first non-zero exit code, else 0.

        A single argument is handed to the shell so that variables such as
        ``$name`` expand; several arguments are executed directly.
        """
        if workspace is None or not self.manager.exists(workspace):
            raise NotInWorkspaceError("Not in workspace")
        if not command:
            raise ValueError("no command given")

        cwd = cwd or Path.cwd()
        loaded = self.manager.load(workspace)
        capture = not _inherits_stdout()

        for checkout in loaded.repositories.values():
            if checkout.state == CheckoutState.ABSENT:
                logger.debug("{}: not checked out, skipping", checkout.name)
                continue
            if checkout.state == CheckoutState.BROKEN:
                logger.warning(
                    "{}: broken ({}), skipping", checkout.name, checkout.broken_reason.description
                )
                continue

            if not quiet:
                self.console.print(f"=== {checkout.name} ===", markup=False, highlight=False)
            code = self._run_one(
                checkout,
                command,
                self.environment(checkout, loaded.root_path, cwd),
                capture,
            )
            if code != 0:
                logger.error("{}: command exited with status {}", checkout.name, code)
                return code
        return 0

    def _run_one(
        self, checkout: RepositoryCheckout, command: list[str], env: dict, capture: bool
    ) -> int:
        shell = len(command) == 1
        args: str | list[str] = command[0] if shell else command
        try:
            result = subprocess.run(
                args,
                shell=shell,
                cwd=checkout.path,
                env=env,
                capture_output=capture,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            self.console.print(f"{command[0]}: command not found", markup=False, highlight=False)
            return COMMAND_NOT_FOUND
        if capture:
            # stdout is not a real file (e.g. under a test runner), relay the output
            if result.stdout:
                sys.stdout.write(result.stdout)
            if result.stderr:
                sys.stderr.write(result.stderr)
        return result.returncode
