"""
Test the administrative command line against a throwaway database.
"""

import pytest
from typer.testing import CliRunner

from chorequest.auth.tokens import verify_access_token
from chorequest.cli import app
from chorequest.core.config import settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch):
    # Handlers bound to the runner's captured stdout would outlive it
    monkeypatch.setattr("chorequest.cli.setup_logging", lambda: None)


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(settings, "database_url", url)
    return url


def test_init_then_health(database_url):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    assert "initialized" in result.output

    result = runner.invoke(app, ["health"])
    assert result.exit_code == 0
    assert "healthy" in result.output


def test_jobs_on_empty_database(database_url):
    assert runner.invoke(app, ["init"]).exit_code == 0

    generated = runner.invoke(app, ["generate-quests"])
    assert generated.exit_code == 0, generated.output
    assert "Generated 0 quests" in generated.output

    expired = runner.invoke(app, ["expire-quests"])
    assert expired.exit_code == 0, expired.output
    assert "0 streaks broken" in expired.output

    levels = runner.invoke(app, ["recalculate-levels", "--dry-run"])
    assert levels.exit_code == 0
    assert "up to date" in levels.output


def test_issue_token():
    result = runner.invoke(app, ["issue-token", "user-7"])
    assert result.exit_code == 0
    assert verify_access_token(result.output.strip()).user_id == "user-7"
