"""Pytest fixtures and configuration."""

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from git_workspace.config import ConfigResolver, ConfigStore
from git_workspace.layout import RootLayout
from git_workspace.manager import WorkspaceManager
from git_workspace.models import RepositorySpec
from git_workspace.registry import RepositoryRegistry


def run_git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return stripped stdout."""
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def commit_file(repo: Path, filename: str, content: str, message: str | None = None) -> str:
    """Write a file, commit it, return the new commit id."""
    (repo / filename).write_text(content)
    run_git(repo, "add", filename)
    run_git(repo, "commit", "-q", "-m", message or f"update {filename}")
    return run_git(repo, "rev-parse", "HEAD")


@pytest.fixture
def git() -> Callable[..., str]:
    return run_git


@pytest.fixture
def commit() -> Callable[..., str]:
    return commit_file


@pytest.fixture(autouse=True)
def isolated_git(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's git configuration and identity out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.delenv("GIT_WORKSPACE_ROOT", raising=False)
    monkeypatch.delenv("GIT_WORKSPACE_DEFAULT", raising=False)


@pytest.fixture
def make_upstream(tmp_path: Path) -> Callable[..., Path]:
    """Factory for upstream repositories with a ``main`` branch and a ``v1.0.0`` tag."""
    remotes = tmp_path / "remotes"
    remotes.mkdir(exist_ok=True)

    def factory(name: str, branches: tuple[str, ...] = ()) -> Path:
        repo = remotes / name
        repo.mkdir()
        run_git(repo, "init", "-q", "-b", "main")
        commit_file(repo, "README.md", f"# {name}\n", "initial commit")
        run_git(repo, "tag", "v1.0.0")
        commit_file(repo, "CHANGES.md", "second\n", "second commit")
        for branch in branches:
            run_git(repo, "checkout", "-q", "-b", branch)
            commit_file(repo, f"{branch.replace('/', '-')}.txt", branch, f"work on {branch}")
            run_git(repo, "checkout", "-q", "main")
        return repo

    return factory


@pytest.fixture
def upstreams(make_upstream: Callable[..., Path]) -> dict[str, Path]:
    """Three upstream repositories; repo-b also has a ``develop`` branch."""
    return {
        "repo-a": make_upstream("repo-a"),
        "repo-b": make_upstream("repo-b", branches=("develop",)),
        "repo-c": make_upstream("repo-c"),
    }


@pytest.fixture
def root(tmp_path: Path) -> Path:
    path = tmp_path / "root"
    path.mkdir()
    return path


@pytest.fixture
def layout(root: Path) -> RootLayout:
    return RootLayout(root)


@pytest.fixture
def store(layout: RootLayout) -> ConfigStore:
    return ConfigStore(layout)


@pytest.fixture
def resolver(store: ConfigStore) -> ConfigResolver:
    return ConfigResolver(store)


@pytest.fixture
def registry(layout: RootLayout) -> RepositoryRegistry:
    return RepositoryRegistry(layout)


@pytest.fixture
def manager(layout, store, resolver, registry) -> WorkspaceManager:
    return WorkspaceManager(layout, store, resolver, registry)


@pytest.fixture
def configured(store: ConfigStore, upstreams: dict[str, Path]) -> dict[str, Path]:
    """Default template: repo-a and repo-b follow the workspace name, repo-c pinned at v1.0.0."""
    store.set_default(RepositorySpec(url=str(upstreams["repo-a"])))
    store.set_default(RepositorySpec(url=str(upstreams["repo-b"])))
    store.set_default(RepositorySpec(url=str(upstreams["repo-c"]), pinned_ref="v1.0.0"))
    return upstreams
