"""Tests for root discovery and workspace directory listing."""

from pathlib import Path

import pytest

from git_workspace.layout import (
    WORKSPACE_MARKER,
    RootLayout,
    default_workspace_name,
    resolve_root,
)


def make_workspace(layout: RootLayout, name: str, marked: bool = True) -> Path:
    path = layout.workspace_path(name)
    path.mkdir(parents=True)
    if marked:
        (path / WORKSPACE_MARKER).write_text(name + "\n")
    return path


class TestResolveRoot:
    def test_explicit_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GIT_WORKSPACE_ROOT", str(tmp_path / "env"))
        assert resolve_root(tmp_path / "explicit") == (tmp_path / "explicit").resolve()

    def test_environment_over_discovery(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        (tmp_path / "worktrees").mkdir()
        monkeypatch.setenv("GIT_WORKSPACE_ROOT", str(tmp_path / "env"))
        assert resolve_root(cwd=tmp_path) == (tmp_path / "env").resolve()

    @pytest.mark.parametrize("marker", [".workspace", "worktrees"])
    def test_discovers_ancestor_with_directory(self, tmp_path: Path, marker: str):
        (tmp_path / marker).mkdir()
        deep = tmp_path / "worktrees" / "main" / "repo-a"
        deep.mkdir(parents=True)
        assert resolve_root(cwd=deep) == tmp_path.resolve()

    def test_discovers_legacy_file(self, tmp_path: Path):
        (tmp_path / "workspace.conf").write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert resolve_root(cwd=nested) == tmp_path.resolve()

    def test_workspace_marker_file_is_not_a_root(self, tmp_path: Path):
        (tmp_path / "worktrees").mkdir()
        workspace = tmp_path / "worktrees" / "main"
        workspace.mkdir()
        (workspace / WORKSPACE_MARKER).write_text("main\n")
        assert resolve_root(cwd=workspace) == tmp_path.resolve()

    def test_config_directory_beats_nearer_legacy_file(self, tmp_path: Path):
        (tmp_path / ".workspace").mkdir()
        nested = tmp_path / "worktrees" / "main" / "repo-a"
        nested.mkdir(parents=True)
        (tmp_path / "worktrees" / "main" / "workspace.conf").write_text("")
        assert resolve_root(cwd=nested) == tmp_path.resolve()

    def test_nothing_inside_a_linked_checkout_is_a_root(self, tmp_path: Path):
        (tmp_path / "workspace.conf").write_text("")
        checkout = tmp_path / "worktrees" / "main" / "repo-a"
        (checkout / "worktrees").mkdir(parents=True)
        (checkout / "workspace.conf").write_text("tracked by repo-a\n")
        (checkout / ".git").write_text("gitdir: /somewhere/worktrees/repo-a\n")
        assert resolve_root(cwd=checkout / "worktrees") == tmp_path.resolve()

    def test_falls_back_to_cwd(self, tmp_path: Path):
        lonely = tmp_path / "lonely"
        lonely.mkdir()
        assert resolve_root(cwd=lonely) == lonely.resolve()


class TestDefaultWorkspaceName:
    def test_main_by_default(self):
        assert default_workspace_name() == "main"

    def test_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GIT_WORKSPACE_DEFAULT", "trunk")
        assert default_workspace_name() == "trunk"


class TestListWorkspaces:
    def test_empty_root(self, layout: RootLayout):
        assert layout.list_workspaces() == []

    def test_marked_and_nested(self, layout: RootLayout):
        make_workspace(layout, "main")
        make_workspace(layout, "feature/login")
        make_workspace(layout, "feature/signup")
        assert layout.list_workspaces() == ["feature/login", "feature/signup", "main"]

    def test_unmarked_top_level_directory(self, layout: RootLayout):
        make_workspace(layout, "handmade", marked=False)
        assert layout.list_workspaces() == ["handmade"]

    def test_checkout_directories_are_not_workspaces(self, layout: RootLayout):
        stray = layout.worktrees_dir / "stray"
        stray.mkdir(parents=True)
        (stray / ".git").write_text("gitdir: /nowhere\n")
        assert layout.list_workspaces() == []


class TestCurrentWorkspace:
    def test_inside_checkout(self, layout: RootLayout):
        workspace = make_workspace(layout, "main")
        (workspace / "repo-a" / "src").mkdir(parents=True)
        assert layout.current_workspace(workspace / "repo-a" / "src") == "main"

    def test_nested_name(self, layout: RootLayout):
        workspace = make_workspace(layout, "feature/login")
        assert layout.current_workspace(workspace) == "feature/login"

    def test_outside(self, layout: RootLayout):
        make_workspace(layout, "main")
        assert layout.current_workspace(layout.root) is None
        assert layout.current_workspace(layout.worktrees_dir) is None
