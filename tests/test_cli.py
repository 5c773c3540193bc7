"""Tests for the command-line interface."""

import json
import shutil
from pathlib import Path

import pytest
from loguru import logger
from typer.testing import CliRunner

from git_workspace import __version__
from git_workspace.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    # sinks added during invoke point at the runner's closed streams
    logger.remove()


@pytest.fixture
def cli(root: Path):
    def invoke(*args: str, input: str | None = None):
        return runner.invoke(app, ["--root", str(root), *args], input=input)

    return invoke


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_command(self, cli):
        result = cli("help")
        assert result.exit_code == 0
        for command in ("switch", "init", "sync", "status", "foreach", "list", "clean", "repair", "config"):
            assert command in result.output

    def test_verbose_logs_debug_to_stderr(self, cli):
        result = cli("--verbose", "list")
        assert result.exit_code == 0
        assert "DEBUG" in result.output

    def test_root_from_environment(self, root: Path, monkeypatch, configured):
        monkeypatch.setenv("GIT_WORKSPACE_ROOT", str(root))
        result = runner.invoke(app, ["config", "show", "main"])
        assert result.exit_code == 0
        assert str(configured["repo-a"]) in result.output


class TestConfigCommands:
    def test_set_and_show(self, cli, upstreams):
        url = str(upstreams["repo-a"])

        result = cli("config", "set", "test", url, "develop", "v1.0.0")
        assert result.exit_code == 0
        assert "Set repository config" in result.output

        result = cli("config", "show", "test")
        assert result.exit_code == 0
        assert "Workspace-specific repositories:" in result.output
        assert url in result.output
        assert "develop" in result.output
        assert "v1.0.0" in result.output

    def test_set_by_repository_name(self, cli, store, upstreams):
        cli("config", "set-default", str(upstreams["repo-a"]))

        result = cli("config", "set", "test", "repo-a", "feature-x")

        assert result.exit_code == 0
        [spec] = store.read_overrides("test")
        assert spec.url == str(upstreams["repo-a"])
        assert spec.branch == "feature-x"

    def test_set_unknown_repository_name(self, cli, store):
        result = cli("config", "set", "test", "nosuchrepo")
        assert result.exit_code == 3
        assert "Unknown repository" in result.output
        assert store.read_overrides("test") == []

    def test_set_existing_relative_path(self, cli, store, root: Path, make_upstream):
        shutil.copytree(make_upstream("local-lib"), root / "local-lib")
        result = cli("config", "set", "test", "local-lib")
        assert result.exit_code == 0, result.output
        assert [s.url for s in store.read_overrides("test")] == ["local-lib"]

    def test_set_default(self, cli, upstreams):
        url = str(upstreams["repo-b"])

        result = cli("config", "set-default", url, "main")
        assert result.exit_code == 0
        assert "Set default repository config" in result.output

        result = cli("config", "show", "newworkspace")
        assert "Default repositories (inherited):" in result.output
        assert url in result.output

    def test_show_lists_legacy_tier(self, cli, layout):
        layout.legacy_file.write_text("https://example.com/old.git\n")
        result = cli("config", "show", "anything")
        assert "Legacy configuration (from workspace.conf):" in result.output
        assert "https://example.com/old.git" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ("config", "set", "", "https://example.com/repo.git"),
            ("config", "set", "../bad", "https://example.com/repo.git"),
            ("config", "set", "my workspace", "https://example.com/repo.git"),
            ("config", "set", "test", "https://example.com/repo with spaces.git"),
            ("config", "set", "test", "https://example.com/repo.git", "", "..badref"),
            ("config", "set-default", ""),
            ("config", "set-default", "url", "branch", "ref", "extra"),
        ],
    )
    def test_invalid_input_exits_with_config_code(self, cli, args):
        result = cli(*args)
        assert result.exit_code == 2

    def test_import(self, cli, layout, upstreams, store):
        layout.legacy_file.write_text(
            "\n".join(
                [
                    f"{upstreams['repo-a']} develop",
                    f"{upstreams['repo-b']} feature-test v1.0.0",
                    f"{upstreams['repo-c']}",
                ]
            )
        )

        result = cli("config", "import", "imported")

        assert result.exit_code == 0
        assert "Importing configuration" in result.output
        assert "Import complete" in result.output
        assert [s.name for s in store.read_overrides("imported")] == ["repo-a", "repo-b", "repo-c"]

    def test_import_missing_file(self, cli):
        result = cli("config", "import", "test", "/non/existent/file.conf")
        assert result.exit_code == 2
        assert "not found" in result.output

    def test_import_empty_file(self, cli, tmp_path: Path):
        empty = tmp_path / "empty.conf"
        empty.write_text("")
        result = cli("config", "import", "test", str(empty))
        assert result.exit_code == 0

    def test_unset(self, cli, store):
        cli("config", "set", "test", "https://example.com/app.git")
        assert cli("config", "unset", "test", "app").exit_code == 0
        assert store.read_overrides("test") == []
        assert cli("config", "unset", "test", "app").exit_code == 3

    def test_corrupt_store(self, cli, layout):
        layout.config_dir.mkdir()
        layout.config_file.write_text("[1, 2")
        result = cli("config", "show", "main")
        assert result.exit_code == 2
        assert "invalid JSON" in result.output


class TestWorkspaceCommands:
    def test_switch_list_status(self, cli, configured):
        result = cli("switch", "main")
        assert result.exit_code == 0, result.output
        assert "Switched to workspace" in result.output

        result = cli("list")
        assert result.exit_code == 0
        assert "main" in result.output

        result = cli("status")
        assert result.exit_code == 0
        assert "[clean]" in result.output
        assert "repo-a" in result.output

    def test_init_is_an_alias_of_switch(self, cli, configured, layout):
        result = cli("init", "main")
        assert result.exit_code == 0, result.output
        assert "Initializing workspace: main" in result.output
        assert "Workspace initialized: main" in result.output
        assert (layout.workspace_path("main") / "repo-a").is_dir()

    def test_switch_defaults_to_main(self, cli, configured, layout):
        assert cli("switch").exit_code == 0
        assert (layout.workspace_path("main") / "repo-a").is_dir()

    def test_switch_defaults_to_environment(self, cli, configured, layout, monkeypatch):
        monkeypatch.setenv("GIT_WORKSPACE_DEFAULT", "trunk")
        assert cli("switch").exit_code == 0
        assert layout.workspace_path("trunk").is_dir()

    def test_switch_failure_exit_code(self, cli, configured, store, tmp_path: Path):
        cli("config", "set-default", str(tmp_path / "missing" / "ghost.git"))
        result = cli("switch", "main")
        assert result.exit_code == 1
        assert "ghost" in result.output

    def test_status_modified(self, cli, configured, layout):
        cli("switch", "main")
        (layout.workspace_path("main") / "repo-a" / "README.md").write_text("changed")
        result = cli("status")
        assert "[modified]" in result.output

    def test_status_json(self, cli, configured):
        cli("switch", "main")
        result = cli("status", "--json")
        data = json.loads(result.stdout)
        assert [w["name"] for w in data["workspaces"]] == ["main"]
        assert len(data["workspaces"][0]["repositories"]) == 3

    def test_no_workspaces(self, cli):
        assert "No workspaces found" in cli("list").output
        assert "No workspaces found" in cli("status").output

    def test_list_json_and_paths(self, cli, configured, layout):
        cli("switch", "main")
        data = json.loads(cli("list", "--json").stdout)
        assert data["workspaces"] == [
            {"name": "main", "path": str(layout.workspace_path("main")), "current": False}
        ]
        assert str(layout.workspace_path("main")) in cli("list", "--paths").output

    def test_sync(self, cli, configured, commit, git, layout):
        cli("switch", "main")
        new_head = commit(configured["repo-a"], "x.txt", "x")
        result = cli("sync", "main")
        assert result.exit_code == 0, result.output
        assert git(layout.workspace_path("main") / "repo-a", "rev-parse", "HEAD") == new_head

    def test_sync_unknown_workspace(self, cli, configured):
        result = cli("sync", "nonexistent")
        assert result.exit_code == 3
        assert "Workspace not found" in result.output

    def test_sync_conflict_exit_code(self, cli, configured, commit, layout):
        cli("switch", "main")
        commit(layout.workspace_path("main") / "repo-a", "local.txt", "local")
        commit(configured["repo-a"], "remote.txt", "remote")
        result = cli("sync", "main")
        assert result.exit_code == 1

    def test_clean_declined(self, cli, configured):
        cli("switch", "main")
        result = cli("clean", "main", input="n\n")
        assert result.exit_code == 0
        assert "Delete workspace: main?" in result.output
        assert "main" in cli("list").output

    def test_clean_confirmed(self, cli, configured, layout):
        cli("switch", "main")
        cli("switch", "other")
        result = cli("clean", "main", "--yes")
        assert result.exit_code == 0
        assert "Workspace removed" in result.output
        assert not layout.workspace_path("main").exists()
        listing = cli("list").output
        assert "main" not in listing
        assert "other" in listing

    def test_clean_unknown(self, cli):
        result = cli("clean", "nonexistent", "--yes")
        assert result.exit_code == 3

    def test_repair(self, cli, configured, layout):
        cli("switch", "main")
        shutil.rmtree(layout.central_path("repo-a"))
        result = cli("repair", "main", "repo-a")
        assert result.exit_code == 0, result.output
        assert "Attempting to repair" in result.output
        assert "[broken" not in cli("status").output


class TestForeachCommand:
    def test_outside_workspace(self, cli, configured, root: Path, monkeypatch):
        cli("switch", "main")
        monkeypatch.chdir(root)
        result = cli("foreach", "pwd")
        assert result.exit_code == 4
        assert "Not in workspace" in result.output

    def test_inside_workspace(self, cli, configured, layout, monkeypatch):
        cli("switch", "main")
        monkeypatch.chdir(layout.workspace_path("main"))

        result = cli("foreach", "echo name=$name path=$path")

        assert result.exit_code == 0
        assert "=== repo-a ===" in result.output
        assert "name=repo-a path=repo-a" in result.output

    @pytest.mark.parametrize("flag", ["--quiet", "-q"])
    def test_quiet(self, cli, configured, layout, monkeypatch, flag):
        cli("switch", "main")
        monkeypatch.chdir(layout.workspace_path("main") / "repo-b")

        result = cli("foreach", flag, "echo $name")

        assert "===" not in result.output
        assert result.output.split() == ["repo-a", "repo-b", "repo-c"]

    def test_command_with_options(self, cli, configured, layout, monkeypatch):
        cli("switch", "main")
        monkeypatch.chdir(layout.workspace_path("main"))
        result = cli("foreach", "git", "status", "-s")
        assert result.exit_code == 0

    def test_failure_code(self, cli, configured, layout, monkeypatch):
        cli("switch", "main")
        monkeypatch.chdir(layout.workspace_path("main"))
        result = cli("foreach", "exit 3")
        assert result.exit_code == 3
        assert "=== repo-b ===" not in result.output
