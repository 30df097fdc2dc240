"""
Tests for the CLI interface.
"""
import csv
import io
import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from token_savings.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from token_savings.storage.db import get_connection
from token_savings.storage.models import InvocationRecord
from token_savings.storage.repository import insert_records

runner = CliRunner()


@pytest.fixture
def db_path():
    """Create a temporary history database path."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield os.path.join(temp_dir, "history.db")


@pytest.fixture
def populated_db(db_path):
    """History with activity on three consecutive days."""
    base = datetime(2026, 1, 28, 9, tzinfo=timezone.utc)
    insert_records([
        InvocationRecord(
            timestamp=base + timedelta(days=day, minutes=i),
            original_cmd="git log",
            rtk_cmd="rtk git log" if i % 2 else "rtk ls",
            input_tokens=2000 + 100 * day,
            output_tokens=200
        )
        for day in range(3)
        for i in range(4)
    ], db_path)
    return db_path


def _invoke(db, *args):
    return runner.invoke(app, ["--db", db, *args])


class TestGainViews:
    """Test the time-bucketed gain views."""

    def test_daily_text(self, populated_db):
        result = _invoke(populated_db, "gain", "--daily")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Daily Breakdown (3 days)" in result.output
        assert "TOTAL" in result.output

    def test_all_json(self, populated_db):
        result = _invoke(populated_db, "gain", "--all", "--format", "json")
        assert result.exit_code == EXIT_CODE_PASS
        data = json.loads(result.output)
        assert data["summary"]["commands"] == 12
        assert len(data["daily"]) == 3
        assert len(data["weekly"]) == 1
        assert data["monthly"][0]["month"] == "2026-01"

    def test_combined_flags(self, populated_db):
        result = _invoke(populated_db, "gain", "--daily", "--monthly", "--format", "json")
        data = json.loads(result.output)
        assert set(data) == {"summary", "daily", "monthly"}

    def test_weekly_csv(self, populated_db):
        result = _invoke(populated_db, "gain", "--weekly", "--format", "csv")
        assert result.exit_code == EXIT_CODE_PASS
        lines = result.output.splitlines()
        assert lines[0] == "# Weekly Data"
        rows = list(csv.DictReader(io.StringIO("\n".join(lines[1:]))))
        assert rows[0]["week_start"] == "2026-01-26"
        assert int(rows[0]["commands"]) == 12

    def test_output_is_idempotent(self, populated_db):
        first = _invoke(populated_db, "gain", "--all", "--format", "csv").output
        second = _invoke(populated_db, "gain", "--all", "--format", "csv").output
        assert first == second

    def test_empty_history_is_not_an_error(self, db_path):
        result = _invoke(db_path, "gain", "--daily")
        assert result.exit_code == EXIT_CODE_PASS
        total_line = next(line for line in result.output.splitlines() if line.startswith("TOTAL"))
        assert total_line.split() == ["TOTAL", "0", "0", "0", "0", "0.0%"]

    def test_empty_history_json(self, db_path):
        result = _invoke(db_path, "gain", "--all", "--format", "json")
        assert result.exit_code == EXIT_CODE_PASS
        data = json.loads(result.output)
        assert data["summary"]["commands"] == 0
        assert data["daily"] == []

    def test_week_anchor_from_config(self, populated_db):
        config_path = os.path.join(os.path.dirname(populated_db), "config.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("week_start: sunday\n")
        result = runner.invoke(
            app, ["--config", config_path, "--db", populated_db, "gain", "--weekly", "--format", "json"]
        )
        assert json.loads(result.output)["weekly"][0]["week_start"] == "2026-01-25"

    def test_malformed_rows_reported(self, populated_db):
        conn = get_connection(populated_db)
        try:
            conn.execute("""
                INSERT INTO commands
                (timestamp, original_cmd, rtk_cmd, input_tokens, output_tokens, saved_tokens, savings_pct)
                VALUES ('garbage', 'ls', 'rtk ls', 10, 5, 5, 50.0)
            """)
            conn.commit()
        finally:
            conn.close()
        result = _invoke(populated_db, "gain", "--all", "--format", "json")
        assert result.exit_code == EXIT_CODE_PASS
        data = json.loads(result.stdout)
        assert data["skipped_records"] == 1
        assert data["summary"]["commands"] == 12


class TestGainErrors:
    """Test fail-fast error handling."""

    def test_unsupported_format_fails_before_query(self, db_path):
        with patch("token_savings.cli.main.open_store") as mock_open_store:
            result = _invoke(db_path, "gain", "--daily", "--format", "xml")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unsupported format" in result.output
        mock_open_store.assert_not_called()
        assert not os.path.exists(db_path)

    def test_store_unavailable(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            result = _invoke(temp_dir, "gain", "--daily")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error" in result.output
        assert "TOTAL" not in result.output

    def test_invalid_config(self, db_path):
        config_path = os.path.join(os.path.dirname(db_path), "config.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("timezone: Nowhere/Special\n")
        result = runner.invoke(app, ["--config", config_path, "gain"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output


class TestOverview:
    """Test the default overview."""

    def test_overview_totals_and_commands(self, populated_db):
        result = _invoke(populated_db, "gain")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Total commands:    12" in result.output
        assert "By Command:" in result.output
        assert "rtk git log" in result.output

    def test_overview_extras(self, populated_db):
        result = _invoke(populated_db, "gain", "--graph", "--history", "--quota", "--tier", "5x")
        assert result.exit_code == EXIT_CODE_PASS
        assert "Daily Savings (last 30 days):" in result.output
        assert "Recent Commands:" in result.output
        assert "Max 5x ($100/mo)" in result.output

    def test_history_window_applies_to_recent_commands(self, populated_db):
        insert_records([InvocationRecord(
            timestamp=datetime.now(timezone.utc),
            original_cmd="cargo test",
            rtk_cmd="rtk cargo test",
            input_tokens=1000,
            output_tokens=100
        )], populated_db)
        config_path = os.path.join(os.path.dirname(populated_db), "config.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("history_days: 30\n")
        result = runner.invoke(
            app, ["--config", config_path, "--db", populated_db, "gain", "--history"]
        )
        assert result.exit_code == EXIT_CODE_PASS
        assert "Total commands:    1" in result.output
        recent = result.output.split("Recent Commands:")[1]
        assert "rtk cargo test" in recent
        assert "rtk git log" not in recent
        assert "rtk ls" not in recent

    def test_overview_empty(self, db_path):
        result = _invoke(db_path, "gain")
        assert result.exit_code == EXIT_CODE_PASS
        assert "No tracking data yet." in result.output

    def test_json_without_views_exports_summary(self, populated_db):
        result = _invoke(populated_db, "gain", "--format", "json")
        assert json.loads(result.output) == {
            "summary": {
                "commands": 12,
                "input_tokens": 25200,
                "output_tokens": 2400,
                "saved_tokens": 22800,
                "savings_pct": 90.48,
            }
        }

    def test_compact(self, populated_db):
        result = _invoke(populated_db, "compact")
        assert result.exit_code == EXIT_CODE_PASS
        assert result.output == "12cmds 25.2Kin 2.4Kout 22.8Ksaved (90%)\n"


class TestTrackAndInit:

    def test_init_creates_database(self, db_path):
        result = _invoke(db_path, "init")
        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(db_path)

    def test_track_with_token_counts(self, db_path):
        result = _invoke(db_path, "track", "ls -la", "rtk ls", "--input-tokens", "1200", "--output-tokens", "300")
        assert result.exit_code == EXIT_CODE_PASS
        data = json.loads(_invoke(db_path, "gain", "--daily", "--format", "json").output)
        assert data["summary"]["saved_tokens"] == 900
        assert data["summary"]["savings_pct"] == 75.0

    def test_track_with_files(self, db_path):
        directory = os.path.dirname(db_path)
        raw_path = os.path.join(directory, "raw.txt")
        compressed_path = os.path.join(directory, "compressed.txt")
        with open(raw_path, "w", encoding="utf-8") as f:
            f.write("x" * 400)
        with open(compressed_path, "w", encoding="utf-8") as f:
            f.write("x" * 41)
        result = _invoke(
            db_path, "track", "cat big.log", "rtk read big.log",
            "--input-file", raw_path, "--output-file", compressed_path
        )
        assert result.exit_code == EXIT_CODE_PASS
        summary = json.loads(_invoke(db_path, "gain", "--format", "json").output)["summary"]
        assert summary["input_tokens"] == 100
        assert summary["output_tokens"] == 11

    def test_track_requires_counts(self, db_path):
        result = _invoke(db_path, "track", "ls", "rtk ls")
        assert result.exit_code == EXIT_CODE_FAIL
