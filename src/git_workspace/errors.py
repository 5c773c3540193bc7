"""Error taxonomy and exit codes."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes for non-foreach commands."""

    OK = 0
    FAILURE = 1
    CONFIG = 2
    NOT_FOUND = 3
    NOT_IN_WORKSPACE = 4


class WorkspaceError(Exception):
    """Base class for every error this tool reports to the user."""

    exit_code: ExitCode = ExitCode.FAILURE

    def __init__(self, message: str, *, repository: str = "", operation: str = ""):
        super().__init__(message)
        self.message = message
        self.repository = repository
        self.operation = operation

    def __str__(self) -> str:
        prefix = ""
        if self.repository and self.operation:
            prefix = f"{self.repository}: {self.operation} failed: "
        elif self.repository:
            prefix = f"{self.repository}: "
        return prefix + self.message


class ConfigError(WorkspaceError):
    """Malformed or unreadable configuration input."""

    exit_code = ExitCode.CONFIG

    def __init__(self, message: str, *, source: str = "", line: int | None = None):
        location = ""
        if source and line is not None:
            location = f"{source}:{line}: "
        elif source:
            location = f"{source}: "
        super().__init__(location + message)
        self.source = source
        self.line = line


class NotFoundError(WorkspaceError):
    """Unknown workspace, repository or command."""

    exit_code = ExitCode.NOT_FOUND


class NotInWorkspaceError(WorkspaceError):
    """A command that needs a current workspace was run outside of one."""

    exit_code = ExitCode.NOT_IN_WORKSPACE


class GitCommandError(WorkspaceError):
    """A git invocation exited non-zero."""

    def __init__(
        self,
        args: list[str] | tuple[str, ...],
        returncode: int,
        stderr: str,
        **kwargs,
    ):
        self.command = ["git", *args]
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr or f"exit status {returncode}"
        super().__init__(f"`{' '.join(self.command)}`: {detail}", **kwargs)


class NetworkError(GitCommandError):
    """The remote could not be reached."""


class RefNotFoundError(WorkspaceError):
    """Neither the requested branch nor the pinned reference could be resolved."""


class SyncConflictError(WorkspaceError):
    """A fast-forward-only update was not possible."""


class LinkConflictError(WorkspaceError):
    """The checkout path is already occupied by something that is not a checkout."""


class DamagedCentralError(WorkspaceError):
    """A central repository is unusable but still has checkouts linked into it."""


_NETWORK_MARKERS = (
    "could not resolve host",
    "unable to access",
    "could not read from remote repository",
    "does not appear to be a git repository",
    "connection refused",
    "connection timed out",
    "does not exist",
)


def classify_git_error(
    args: list[str] | tuple[str, ...], returncode: int, stderr: str
) -> GitCommandError:
    """Build the most specific error for a failed git invocation."""
    lowered = stderr.lower()
    if any(marker in lowered for marker in _NETWORK_MARKERS) and args and args[0] in (
        "clone",
        "fetch",
        "ls-remote",
    ):
        return NetworkError(args, returncode, stderr)
    return GitCommandError(args, returncode, stderr)
