"""Unit tests for the xanosync CLI commands."""

import json
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from xanosync.api import XanoClient
from xanosync.cli import main, to_project_paths
from xanosync.exceptions import XanoAPIError, XanoConfigError
from xanosync.project import ProjectContext, load_project
from xanosync.sync.fetch import DiffResult, FetchedObject, FetchResult
from xanosync.sync.merge import MergeResult
from xanosync.sync.store import ObjectStore, TrackedObject
from xanosync.utils import compute_sha256, encode_base64


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def project(temp_dir, monkeypatch):
    """Create an initialized project and make it the working directory."""
    (temp_dir / ".xano").mkdir()
    (temp_dir / ".xano" / "config.json").write_text(
        json.dumps({"workspaceId": 42, "branch": "v1", "workspaceName": "Demo"}),
        encoding="utf-8",
    )
    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture
def mock_client():
    """Patch the client class used by the commands."""
    with patch("xanosync.cli.XanoClient") as mock_class:
        client = MagicMock(spec=XanoClient)
        client.list_all.return_value = []
        mock_class.return_value = client
        yield client


def write(root: Path, path: str, content: str) -> None:
    file_path = root / path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")


def track(root: Path, *entries) -> None:
    """Save store entries given as (id, type, path, content)."""
    ObjectStore(root).save(
        [
            TrackedObject(
                id=object_id,
                type=object_type,
                path=path,
                sha256=compute_sha256(content),
                original="",
            )
            for object_id, object_type, path, content in entries
        ]
    )


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("init", "sync", "push", "pull", "status", "resolve", "index"):
            assert command in result.output

    def test_not_in_project(self, runner, temp_dir, monkeypatch):
        """Test that commands outside a project fail cleanly."""
        monkeypatch.chdir(temp_dir)
        result = runner.invoke(main, ["push"])
        assert result.exit_code == 1
        assert "Not in a xano project" in result.output


class TestInitCommand:
    """Tests for the init command."""

    @patch("xanosync.cli.XanoClient")
    @patch("xanosync.cli.config")
    def test_init_writes_project(
        self, mock_config, mock_client_class, runner, temp_dir
    ):
        """Test init with valid credentials."""
        mock_config.get_config_path.return_value = Path("/mock/config")

        result = runner.invoke(
            main,
            [
                "init",
                "--access-token",
                "tok",
                "--instance-origin",
                "https://x1.xano.io",
                "--workspace-id",
                "42",
                "--branch",
                "dev",
                "--directory",
                str(temp_dir),
            ],
        )

        assert result.exit_code == 0
        assert "Credentials are valid" in result.output
        mock_config.save_credentials.assert_called_once_with(
            "tok", "https://x1.xano.io"
        )
        context = load_project(temp_dir)
        assert context.workspace_id == 42
        assert context.branch == "dev"

    @patch("xanosync.cli.XanoClient")
    @patch("xanosync.cli.config")
    def test_init_invalid_credentials_cancel(
        self, mock_config, mock_client_class, runner, temp_dir
    ):
        """Test that a failed validation can be cancelled."""
        client = mock_client_class.return_value
        client.list_objects.side_effect = XanoAPIError("Invalid access token", 401)

        result = runner.invoke(
            main,
            [
                "init",
                "--access-token",
                "bad",
                "--instance-origin",
                "https://x1.xano.io",
                "--workspace-id",
                "42",
                "--directory",
                str(temp_dir),
            ],
            input="n\n",
        )

        assert result.exit_code == 1
        assert "Credential validation failed" in result.output
        mock_config.save_credentials.assert_not_called()
        client.close.assert_called_once()


class TestSyncCommand:
    """Tests for the sync command."""

    @patch("xanosync.cli.sync_metadata")
    def test_sync_summary(self, mock_sync, runner, project, mock_client):
        """Test the text summary."""
        fetched = FetchedObject(id=5, type="function", name="a", xanoscript="x")
        mock_sync.return_value = (DiffResult(new=[fetched]), FetchResult())
        track(project, (5, "function", "functions/a.xs", "x"))

        result = runner.invoke(main, ["sync"])

        assert result.exit_code == 0
        assert "Synced 1 objects" in result.output
        assert "Changes: 1 new" in result.output
        assert 'Run "xanosync pull"' in result.output

    @patch("xanosync.cli.sync_metadata")
    def test_sync_json(self, mock_sync, runner, project, mock_client):
        """Test the JSON summary."""
        mock_sync.return_value = (DiffResult(), FetchResult())

        result = runner.invoke(main, ["--json", "sync"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "objects": 0,
            "new": 0,
            "updated": 0,
            "removed": 0,
        }

    @patch("xanosync.cli.sync_metadata")
    def test_sync_api_error(self, mock_sync, runner, project, mock_client):
        """Test that API failures exit with status 1."""
        mock_sync.side_effect = XanoAPIError("Rate limit exceeded", 429)
        result = runner.invoke(main, ["sync"])
        assert result.exit_code == 1
        assert "Error: Rate limit exceeded" in result.output


class TestPushCommand:
    """Tests for the push command."""

    def test_push_changed_file(self, runner, project, mock_client):
        """Test pushing an edited file."""
        track(project, (5, "function", "functions/calc.xs", "function calc {}"))
        write(project, "functions/calc.xs", "function calc { v2 }")

        result = runner.invoke(main, ["push"])

        assert result.exit_code == 0
        assert "Summary: 1 pushed, 0 failed, 0 deleted" in result.output
        mock_client.update_object.assert_called_once()

    def test_push_failure_exits_1(self, runner, project, mock_client):
        """Test that a failed file makes the command fail."""
        track(project)
        write(project, "functions/odd.xs", "not xanoscript")

        result = runner.invoke(main, ["push", "functions/odd.xs"])

        assert result.exit_code == 1
        assert "1 failed" in result.output

    def test_push_json(self, runner, project, mock_client):
        """Test the JSON result."""
        track(project, (5, "function", "functions/gone.xs", "function gone {}"))

        result = runner.invoke(main, ["--json", "push", "--clean"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["deleted"] == ["functions/gone.xs"]
        assert data["errors"] == []

    def test_push_asks_before_deleting_orphans(self, runner, project, mock_client):
        """Test that accepting the prompt deletes the orphan."""
        track(project, (5, "function", "functions/gone.xs", "function gone {}"))

        result = runner.invoke(main, ["push"], input="y\n")

        assert result.exit_code == 0
        assert "Delete these 1 object(s) from Xano?" in result.output
        mock_client.delete_object.assert_called_once_with(
            "function", 5, apigroup_id=None
        )
        assert ObjectStore(project).load() == []

    def test_push_declined_prompt(self, runner, project, mock_client):
        """Test that declining keeps the remote object and the entry."""
        track(project, (5, "function", "functions/gone.xs", "function gone {}"))

        result = runner.invoke(main, ["push"], input="n\n")

        assert result.exit_code == 0
        assert "Skipped." in result.output
        mock_client.delete_object.assert_not_called()
        assert len(ObjectStore(project).load()) == 1

    def test_push_force_does_not_ask(self, runner, project, mock_client):
        """Test that --force only reports orphans."""
        track(project, (5, "function", "functions/gone.xs", "function gone {}"))

        result = runner.invoke(main, ["push", "--force"])

        assert result.exit_code == 0
        assert "Delete these" not in result.output
        assert "xanosync push --clean" in result.output
        mock_client.delete_object.assert_not_called()


class TestPullCommand:
    """Tests for the pull command."""

    def test_pull_conflict(self, runner, project, mock_client):
        """Test that local edits are reported and kept."""
        track(project, (5, "function", "functions/calc.xs", "function calc {}"))
        write(project, "functions/calc.xs", "function calc { local }")
        mock_client.get_object.return_value = {"xanoscript": "function calc { r }"}

        result = runner.invoke(main, ["pull"])

        assert result.exit_code == 0
        assert "Pulled: 0, Skipped: 1, Errors: 0" in result.output
        assert "Use --force" in result.output

    def test_pull_force(self, runner, project, mock_client):
        """Test that --force overwrites."""
        track(project, (5, "function", "functions/calc.xs", "function calc {}"))
        write(project, "functions/calc.xs", "function calc { local }")
        mock_client.get_object.return_value = {"xanoscript": "function calc { r }"}

        result = runner.invoke(main, ["pull", "--force", "functions/calc.xs"])

        assert result.exit_code == 0
        assert "Pulled: 1, Skipped: 0, Errors: 0" in result.output
        content = (project / "functions/calc.xs").read_text(encoding="utf-8")
        assert content == "function calc { r }"

    @patch("xanosync.sync.pull.merge_three_way")
    def test_pull_merge(self, mock_merge, runner, project, mock_client):
        """Test that --merge combines local and remote edits."""
        ObjectStore(project).save(
            [
                TrackedObject(
                    id=5,
                    type="function",
                    path="functions/calc.xs",
                    sha256=compute_sha256("function calc {}"),
                    original=encode_base64("function calc {}"),
                )
            ]
        )
        write(project, "functions/calc.xs", "function calc { local }")
        mock_client.list_all.side_effect = lambda object_type, **kwargs: (
            [{"id": 5, "name": "calc", "xanoscript": "function calc { r }"}]
            if object_type == "function"
            else []
        )
        mock_merge.return_value = MergeResult(content="function calc { merged }")

        result = runner.invoke(main, ["pull", "--merge"])

        assert result.exit_code == 0
        assert "Merged: 1" in result.output
        content = (project / "functions/calc.xs").read_text(encoding="utf-8")
        assert content == "function calc { merged }"
        mock_client.get_object.assert_not_called()


class TestStatusCommand:
    """Tests for the status command."""

    def setup_remote(self, mock_client, content):
        mock_client.list_all.side_effect = lambda object_type, **kwargs: (
            [{"id": 5, "name": "calc", "xanoscript": content}]
            if object_type == "function"
            else []
        )

    def test_status_sections(self, runner, project, mock_client):
        """Test the grouped listing."""
        track(project, (5, "function", "functions/calc.xs", "function calc {}"))
        write(project, "functions/calc.xs", "function calc { local }")
        write(project, "functions/fresh.xs", "function fresh {}")
        self.setup_remote(mock_client, "function calc {}")

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "Workspace: Demo" in result.output
        assert "Modified locally (push to sync):" in result.output
        assert "M  functions/calc.xs" in result.output
        assert "A  functions/fresh.xs" in result.output
        assert "0/2 files in sync, 2 with differences" in result.output

    def test_status_in_sync(self, runner, project, mock_client):
        """Test a clean project."""
        track(project, (5, "function", "functions/calc.xs", "function calc {}"))
        write(project, "functions/calc.xs", "function calc {}")
        self.setup_remote(mock_client, "function calc {}")

        result = runner.invoke(main, ["status"])

        assert "All files in sync." in result.output

    def test_status_json(self, runner, project, mock_client):
        """Test JSON entries."""
        track(project, (5, "function", "functions/calc.xs", "function calc {}"))
        write(project, "functions/calc.xs", "function calc {}")
        self.setup_remote(mock_client, "function calc { remote }")

        result = runner.invoke(main, ["--json", "status"])

        assert json.loads(result.output) == [
            {
                "path": "functions/calc.xs",
                "status": "modified",
                "detail": "remote",
                "id": 5,
                "type": "function",
            }
        ]


class TestResolveCommand:
    """Tests for the resolve command."""

    @pytest.fixture
    def indexed(self, project):
        track(
            project,
            (10, "api_endpoint", "apis/auth/login_POST.xs", ""),
            (20, "function", "functions/login.xs", ""),
            (7, "table", "tables/user.xs", ""),
        )
        return project

    def test_resolve_found(self, runner, indexed):
        """Test the text output of a match."""
        result = runner.invoke(main, ["resolve", "login_POST"])
        assert result.exit_code == 0
        assert "login_POST (api_endpoint)" in result.output
        assert "File: apis/auth/login_POST.xs" in result.output

    def test_resolve_json(self, runner, indexed):
        """Test the JSON output of a match."""
        result = runner.invoke(main, ["--json", "resolve", "login"])
        assert json.loads(result.output) == {
            "filePath": "functions/login.xs",
            "matchType": "basename",
            "name": "login",
            "type": "function",
        }

    def test_resolve_not_found(self, runner, indexed):
        """Test an unknown identifier."""
        result = runner.invoke(main, ["resolve", "nothing_here"])
        assert result.exit_code == 1
        assert 'No workspace object found for "nothing_here"' in result.output

        result = runner.invoke(main, ["--json", "resolve", "nothing_here"])
        assert json.loads(result.output) == {
            "error": "not_found",
            "query": "nothing_here",
        }

    def test_resolve_refs(self, runner, indexed):
        """Test resolving the references of a file."""
        write(indexed, "functions/login.xs", "function login {\n  db.get user\n}\n")
        result = runner.invoke(main, ["resolve", "--refs", "functions/login.xs"])
        assert result.exit_code == 0
        assert "2:3  db user → tables/user.xs" in result.output

    def test_resolve_without_arguments(self, runner, indexed):
        """Test that an identifier or --refs is required."""
        result = runner.invoke(main, ["resolve"])
        assert result.exit_code == 1


class TestIndexCommand:
    """Tests for the index command."""

    def test_full_rebuild(self, runner, project):
        """Test rebuilding the whole index."""
        track(project, (20, "function", "functions/login.xs", ""))

        result = runner.invoke(main, ["index"])

        assert result.exit_code == 0
        assert "Indexed 1 objects" in result.output
        assert (project / ".xano" / "search.json").exists()

    def test_incremental_file(self, runner, project):
        """Test adding one untracked file to an existing index."""
        track(project)
        runner.invoke(main, ["index"])
        write(project, "functions/fresh.xs", "function fresh {}")

        result = runner.invoke(main, ["index", "functions/fresh.xs"])

        assert result.exit_code == 0
        assert "Updated 1 entry in search index" in result.output
        data = json.loads((project / ".xano" / "search.json").read_text())
        assert data["byPath"]["functions/fresh.xs"]["type"] == "function"

    def test_incremental_without_index(self, runner, project):
        """Test that a missing index triggers a full rebuild."""
        track(project, (20, "function", "functions/login.xs", ""))
        result = runner.invoke(main, ["index", "functions/"])
        assert "full rebuild: 1 objects" in result.output


class TestToProjectPaths:
    """Tests for to_project_paths."""

    def test_relative_paths(self, temp_dir):
        """Test conversion from the working directory."""
        context = ProjectContext(root=temp_dir, workspace_id=1)
        nested = temp_dir / "apis"
        assert to_project_paths(context, ("auth/", "x.xs"), cwd=nested) == [
            "apis/auth/",
            "apis/x.xs",
        ]
        assert to_project_paths(context, (".",), cwd=temp_dir) == ["."]

    def test_outside_project(self, temp_dir):
        """Test that paths outside the root are rejected."""
        context = ProjectContext(root=temp_dir / "project", workspace_id=1)
        with pytest.raises(XanoConfigError, match="outside the project"):
            to_project_paths(context, ("../elsewhere",), cwd=temp_dir / "project")
