"""Tests for status reporting."""

import shutil

from git_workspace.models import BrokenReason, CheckoutState, RepositorySpec
from git_workspace.status import StatusReporter, short_ref


class TestShortRef:
    def test_abbreviates_object_names(self):
        assert short_ref("0123456789abcdef0123456789abcdef01234567") == "0123456"

    def test_keeps_symbolic_names(self):
        assert short_ref("v1.0.0") == "v1.0.0"
        assert short_ref("deadbeef") == "deadbeef"


class TestStatusReporter:
    def test_no_workspaces(self, manager):
        assert StatusReporter(manager).report() == []

    def test_clean_workspace(self, manager, configured):
        manager.switch("main")

        [status] = StatusReporter(manager).report()

        assert status.name == "main"
        by_name = {r.name: r for r in status.repositories}
        assert by_name["repo-a"].ref_label == "main"
        assert by_name["repo-a"].marker == "[clean]"
        assert by_name["repo-c"].ref_label == "v1.0.0"
        assert by_name["repo-c"].detached
        assert by_name["repo-c"].state == CheckoutState.PINNED

    def test_modified_checkout(self, manager, configured):
        manager.switch("main")
        (manager.layout.workspace_path("main") / "repo-b" / "README.md").write_text("changed")

        [status] = StatusReporter(manager).report()

        by_name = {r.name: r for r in status.repositories}
        assert by_name["repo-b"].marker == "[modified]"
        assert by_name["repo-a"].marker == "[clean]"

    def test_untracked_file_counts_as_modified(self, manager, configured):
        manager.switch("main")
        (manager.layout.workspace_path("main") / "repo-a" / "new.txt").write_text("x")

        [status] = StatusReporter(manager).report(["main"])

        assert status.repositories[0].dirty

    def test_broken_and_missing_markers(self, manager, configured, store, make_upstream):
        manager.switch("main")
        shutil.rmtree(manager.layout.central_path("repo-a"))
        store.set_override("main", RepositorySpec(url=str(make_upstream("repo-d"))))

        [status] = StatusReporter(manager).report()

        by_name = {r.name: r for r in status.repositories}
        assert by_name["repo-a"].broken_reason == BrokenReason.MISSING_CENTRAL
        assert by_name["repo-a"].marker.startswith("[broken:")
        assert by_name["repo-d"].marker == "[missing]"

    def test_every_workspace_is_reported(self, manager, configured):
        manager.switch("main")
        manager.switch("w2")

        names = [s.name for s in StatusReporter(manager).report()]

        assert names == ["main", "w2"]

    def test_to_dict(self, manager, configured):
        manager.switch("main")
        [status] = StatusReporter(manager).report()
        data = status.to_dict()
        assert data["name"] == "main"
        assert data["repositories"][0] == {
            "name": "repo-a",
            "path": str(manager.layout.workspace_path("main") / "repo-a"),
            "ref": "main",
            "dirty": False,
            "state": "tracking",
            "broken_reason": None,
            "detached": False,
        }
