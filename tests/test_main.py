"""
Tests for the Command-Line Interface
"""

import pytest
from click.testing import CliRunner

from follower_insights import __version__
from follower_insights.main import cli
from follower_insights.storage import get_store


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def archive_path(tmp_path, sample_archive):
    """Sample archive written to disk."""
    path = tmp_path / "export.zip"
    path.write_bytes(sample_archive)
    return path


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def session_id(runner, archive_path, db_path):
    """Process the sample archive through the CLI and return the session id."""
    result = runner.invoke(cli, ["--db", str(db_path), "process", str(archive_path), "--no-reports"])
    assert result.exit_code == 0, result.output
    return get_store(db_path).get_latest_session_id()


class TestProcessCommand:
    """Tests for the process command."""

    def test_process_with_reports(self, runner, archive_path, db_path, tmp_path):
        """Test processing writes a session and the requested reports."""
        out_dir = tmp_path / "reports"
        result = runner.invoke(cli, [
            "--db", str(db_path),
            "process", str(archive_path),
            "--output", str(out_dir),
            "--format", "csv",
        ])

        assert result.exit_code == 0, result.output
        assert "Mutual" in result.output
        assert get_store(db_path).get_latest_session_id() is not None
        assert len(list(out_dir.glob("*.csv"))) == 2

    def test_process_bad_archive(self, runner, tmp_path, db_path):
        """Test an unreadable archive exits with an error."""
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"not a zip")

        result = runner.invoke(cli, ["--db", str(db_path), "process", str(bad)])

        assert result.exit_code == 1
        assert "Processing failed" in result.output


class TestQueryCommands:
    """Tests for list, timeline, export and sessions."""

    def test_list(self, runner, db_path, session_id):
        """Test listing a category shows its handles."""
        result = runner.invoke(cli, ["--db", str(db_path), "list", session_id, "mutual"])
        assert result.exit_code == 0, result.output
        assert "bob" in result.output
        assert "1 total" in result.output

    def test_list_invalid_page(self, runner, db_path, session_id):
        """Test an invalid page is reported as an error."""
        result = runner.invoke(cli, ["--db", str(db_path), "list", session_id, "mutual", "--page", "0"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_list_unknown_session(self, runner, db_path, session_id):
        """Test an unknown session is reported as an error."""
        result = runner.invoke(cli, ["--db", str(db_path), "list", "missing", "mutual"])
        assert result.exit_code == 1

    def test_timeline(self, runner, db_path, session_id):
        """Test the timeline command prints growth windows."""
        result = runner.invoke(cli, ["--db", str(db_path), "timeline", session_id])
        assert result.exit_code == 0, result.output
        assert "All time" in result.output

    def test_export_stdout(self, runner, db_path, session_id):
        """Test CSV export to stdout."""
        result = runner.invoke(cli, ["--db", str(db_path), "export", session_id])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == [
            "Username,Category,Profile URL",
            '"bob","Mutual","https://www.instagram.com/bob"',
            '"alice","Followers Only","https://www.instagram.com/alice"',
            '"carol","Following Only","https://www.instagram.com/carol"',
        ]

    def test_export_file(self, runner, db_path, session_id, tmp_path):
        """Test CSV export of one category to a file."""
        target = tmp_path / "mutual.csv"
        result = runner.invoke(cli, [
            "--db", str(db_path), "export", session_id, "--category", "mutual", "--output", str(target),
        ])
        assert result.exit_code == 0, result.output
        assert target.read_text() == (
            'Username,Category,Profile URL\n"bob","Mutual","https://www.instagram.com/bob"'
        )

    def test_sessions(self, runner, db_path, session_id):
        """Test recent sessions are listed."""
        result = runner.invoke(cli, ["--db", str(db_path), "sessions"])
        assert result.exit_code == 0, result.output
        assert "No sessions found" not in result.output

    def test_sessions_empty(self, runner, db_path):
        """Test an empty store is reported."""
        result = runner.invoke(cli, ["--db", str(db_path), "sessions"])
        assert "No sessions found" in result.output


class TestMaintenanceCommands:
    """Tests for cleanup and version."""

    def test_cleanup_keeps_recent(self, runner, db_path, session_id):
        """Test a fresh session survives cleanup."""
        result = runner.invoke(cli, ["--db", str(db_path), "cleanup", "--days", "7"])
        assert result.exit_code == 0, result.output
        assert "Removed 0 sessions" in result.output
        assert get_store(db_path).get_session(session_id) is not None

    def test_version(self, runner):
        """Test the version command."""
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output
