"""Tests for project discovery and configuration."""

import json
import tempfile
from pathlib import Path

import pytest

from xanosync.exceptions import XanoConfigError
from xanosync.project import (
    ProjectContext,
    find_project_root,
    is_initialized,
    load_project,
    load_strategy,
    normalize_paths,
    save_project,
)
from xanosync.sync.paths import PathStrategy


class CustomStrategy(PathStrategy):
    """Strategy referenced by import path in the tests below."""


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


def write_config(root: Path, **values) -> None:
    data = {"workspaceId": 42, "branch": "v1", "workspaceName": "Demo"}
    data.update(values)
    (root / ".xano").mkdir(parents=True, exist_ok=True)
    (root / ".xano" / "config.json").write_text(json.dumps(data), encoding="utf-8")


class TestFindProjectRoot:
    """Tests for find_project_root."""

    def test_finds_config_in_parent(self, temp_dir):
        """Test that the search walks up from a subdirectory."""
        write_config(temp_dir)
        nested = temp_dir / "functions" / "deep"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == temp_dir

    def test_legacy_marker(self, temp_dir):
        """Test that xano.json marks a root."""
        (temp_dir / "xano.json").write_text("{}", encoding="utf-8")
        assert find_project_root(temp_dir) == temp_dir
        assert is_initialized(temp_dir) is False

    def test_no_project(self, temp_dir):
        """Test a directory outside any project."""
        assert find_project_root(temp_dir) is None


class TestLoadProject:
    """Tests for load_project."""

    def test_load_defaults(self, temp_dir):
        """Test a minimal config."""
        write_config(temp_dir)
        context = load_project(temp_dir)
        assert context.root == temp_dir
        assert context.workspace_id == 42
        assert context.branch == "v1"
        assert context.naming == "default"
        assert context.paths["functions"] == "functions"
        assert context.strategy is None

    def test_not_in_project(self, temp_dir):
        """Test the error outside a project."""
        with pytest.raises(XanoConfigError, match="Not in a xano project"):
            load_project(temp_dir)

    def test_not_initialized(self, temp_dir):
        """Test a root marked only by xano.json."""
        (temp_dir / "xano.json").write_text("{}", encoding="utf-8")
        with pytest.raises(XanoConfigError, match="not initialized"):
            load_project(temp_dir)

    def test_unreadable_config(self, temp_dir):
        """Test a corrupt config.json."""
        (temp_dir / ".xano").mkdir()
        (temp_dir / ".xano" / "config.json").write_text("{", encoding="utf-8")
        with pytest.raises(XanoConfigError, match="Failed to read"):
            load_project(temp_dir)

    def test_xano_json_overrides(self, temp_dir):
        """Test that xano.json overrides paths and naming."""
        write_config(temp_dir, paths={"functions": "fn"})
        (temp_dir / "xano.json").write_text(
            json.dumps({"naming": "vscode", "paths": {"tables": "db/"}}),
            encoding="utf-8",
        )
        context = load_project(temp_dir)
        assert context.naming == "vscode"
        assert context.paths["functions"] == "fn"
        assert context.paths["tables"] == "db"

    def test_unknown_naming(self, temp_dir):
        """Test that an unknown naming mode is rejected."""
        write_config(temp_dir, naming="fancy")
        with pytest.raises(XanoConfigError, match="Unknown naming mode"):
            load_project(temp_dir)

    def test_path_strategy(self, temp_dir):
        """Test loading a strategy by import reference."""
        write_config(temp_dir, pathStrategy="test_project:CustomStrategy")
        context = load_project(temp_dir)
        assert isinstance(context.strategy, CustomStrategy)


class TestHelpers:
    """Tests for path normalization, strategies and saving."""

    def test_normalize_legacy_keys(self):
        """Test that legacy keys are renamed."""
        paths = normalize_paths({"triggers": "tables/hooks", "addons": "ext/"})
        assert paths["tableTriggers"] == "tables/hooks"
        assert paths["addOns"] == "ext"
        assert "triggers" not in paths

    def test_normalize_ignores_bad_values(self):
        """Test that non-string values keep the default."""
        assert normalize_paths({"functions": 3})["functions"] == "functions"

    def test_load_strategy_invalid_reference(self):
        """Test a reference without a class name."""
        with pytest.raises(XanoConfigError, match="expected 'module:ClassName'"):
            load_strategy("just_a_module")

    def test_load_strategy_missing_module(self):
        """Test a reference to a missing module."""
        with pytest.raises(XanoConfigError, match="Cannot load pathStrategy"):
            load_strategy("no_such_module_here:Thing")

    def test_load_strategy_wrong_type(self):
        """Test a reference to something that is not a PathStrategy."""
        with pytest.raises(XanoConfigError, match="must subclass"):
            load_strategy("pathlib:PurePosixPath")

    def test_save_project_round_trip(self, temp_dir):
        """Test that a saved context loads back."""
        context = ProjectContext(
            root=temp_dir, workspace_id=7, branch="dev", naming="vscode_name"
        )
        config_path = save_project(context)
        assert config_path == temp_dir / ".xano" / "config.json"

        loaded = load_project(temp_dir)
        assert loaded.workspace_id == 7
        assert loaded.branch == "dev"
        assert loaded.naming == "vscode_name"

    def test_relative_and_absolute(self, temp_dir):
        """Test conversions between absolute and relative paths."""
        context = ProjectContext(root=temp_dir, workspace_id=1)
        assert context.absolute("functions/a.xs") == temp_dir / "functions" / "a.xs"
        assert context.relative(temp_dir / "functions" / "a.xs") == "functions/a.xs"
