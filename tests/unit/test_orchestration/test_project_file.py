"""
Unit tests for the project file bundle id swap.
"""

import logging

import pytest

from wdaorch.orchestration.project_file import reset_project_file, update_project_file

PBXPROJ = """
  PRODUCT_BUNDLE_IDENTIFIER = com.facebook.WebDriverAgentRunner;
  PRODUCT_BUNDLE_IDENTIFIER = com.facebook.WebDriverAgentLib;
"""


@pytest.fixture
def agent_path(temp_dir):
    path = temp_dir / "WebDriverAgent.xcodeproj"
    path.mkdir()
    (path / "project.pbxproj").write_text(PBXPROJ, encoding="utf-8")
    return path


@pytest.mark.unit
class TestProjectFile:
    """Test cases for update_project_file and reset_project_file."""

    def test_update_replaces_bundle_id_and_keeps_backup(self, agent_path):
        """Test that the runner bundle id is replaced and the original is backed up."""
        update_project_file(agent_path, "io.example.runner")

        content = (agent_path / "project.pbxproj").read_text(encoding="utf-8")
        assert "io.example.runner;" in content
        assert "com.facebook.WebDriverAgentRunner" not in content
        assert "com.facebook.WebDriverAgentLib;" in content
        assert (agent_path / "project.pbxproj.old").read_text(encoding="utf-8") == PBXPROJ

    def test_reset_restores_backup(self, agent_path):
        """Test that reset brings back the original content and drops the backup."""
        update_project_file(agent_path, "io.example.runner")
        reset_project_file(agent_path)

        assert (agent_path / "project.pbxproj").read_text(encoding="utf-8") == PBXPROJ
        assert not (agent_path / "project.pbxproj.old").exists()

    def test_reset_without_backup_is_noop(self, agent_path):
        reset_project_file(agent_path)

        assert (agent_path / "project.pbxproj").read_text(encoding="utf-8") == PBXPROJ

    def test_update_missing_project_only_warns(self, temp_dir, caplog):
        """Test that a missing project file is logged, not raised."""
        with caplog.at_level(logging.WARNING):
            update_project_file(temp_dir / "missing.xcodeproj", "io.example.runner")

        assert any(record.levelno == logging.WARNING for record in caplog.records)
