"""git-workspace: one directory per branch, one worktree per repository."""

# `workspace clean` can delete the directory the shell is sitting in.
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .cli import app
from .config import ConfigResolver, ConfigStore
from .errors import (
    ConfigError,
    DamagedCentralError,
    ExitCode,
    GitCommandError,
    LinkConflictError,
    NetworkError,
    NotFoundError,
    NotInWorkspaceError,
    RefNotFoundError,
    SyncConflictError,
    WorkspaceError,
)
from .foreach import ForeachExecutor
from .formatters import OutputFormatter
from .git import GitOperations
from .health import CheckoutProbe, diagnose
from .layout import RootLayout, resolve_root
from .manager import WorkspaceManager
from .models import (
    BrokenReason,
    CentralRepository,
    CheckoutState,
    ConfigTier,
    OperationResult,
    RepairReport,
    RepositoryCheckout,
    RepositorySpec,
    RepositoryState,
    Workspace,
    WorkspaceStatus,
)
from .registry import RepositoryRegistry
from .status import StatusReporter

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "BrokenReason",
    "CentralRepository",
    "CheckoutState",
    "ConfigTier",
    "OperationResult",
    "RepairReport",
    "RepositoryCheckout",
    "RepositorySpec",
    "RepositoryState",
    "Workspace",
    "WorkspaceStatus",
    # Errors
    "ConfigError",
    "DamagedCentralError",
    "ExitCode",
    "GitCommandError",
    "LinkConflictError",
    "NetworkError",
    "NotFoundError",
    "NotInWorkspaceError",
    "RefNotFoundError",
    "SyncConflictError",
    "WorkspaceError",
    # Operations
    "CheckoutProbe",
    "ConfigResolver",
    "ConfigStore",
    "ForeachExecutor",
    "GitOperations",
    "RepositoryRegistry",
    "RootLayout",
    "StatusReporter",
    "WorkspaceManager",
    "diagnose",
    "resolve_root",
    # Formatters
    "OutputFormatter",
]
