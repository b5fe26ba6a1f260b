"""
Tests for the CLI interface.
"""
from decimal import Decimal

import pytest
import yaml
from typer.testing import CliRunner

from usage_governor.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app, replay_tasks
from usage_governor.config.loader import EngineConfig

runner = CliRunner()


@pytest.fixture
def write_yaml(tmp_path):
    """Write a YAML document to a temporary file and return its path."""
    def _write(data, name="data.yaml"):
        path = tmp_path / name
        path.write_text(yaml.dump(data), encoding="utf-8")
        return str(path)
    return _write


def replay_doc(*tasks):
    return {"session_id": "replay-1", "tasks": list(tasks)}


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self):
        """Test invoking without a command."""
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "Use --help" in result.output

    def test_pricing_command(self):
        """Test the pricing table lists the default models."""
        result = runner.invoke(app, ["pricing"])

        assert result.exit_code == 0
        assert "gpt-4o (default)" in result.output
        assert "gpt-4o-mini" in result.output
        assert "$15.00" in result.output

    def test_pricing_with_config(self, write_yaml):
        """Test the pricing table includes configured models."""
        config_path = write_yaml({"pricing": {"models": {"local-llm": {
            "input_rate_per_million": 1,
            "output_rate_per_million": 2,
        }}}}, "config.yaml")

        result = runner.invoke(app, ["pricing", "--config", config_path])

        assert result.exit_code == 0
        assert "local-llm" in result.output

    def test_pricing_bad_config(self, write_yaml):
        """Test an invalid config fails with an error."""
        config_path = write_yaml({"budget": {}}, "config.yaml")

        result = runner.invoke(app, ["pricing", "-c", config_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading config" in result.output

    def test_estimate_command(self):
        """Test a single call estimate."""
        result = runner.invoke(app, ["estimate", "gpt-4o", "1000", "500"])

        assert result.exit_code == 0
        assert "Input cost:  $0.0050" in result.output
        assert "Output cost: $0.0075" in result.output
        assert "Total cost:  $0.0125" in result.output

    def test_estimate_unknown_model(self):
        """Test unknown models are priced at the default rates with a notice."""
        result = runner.invoke(app, ["estimate", "mystery", "1000", "500"])

        assert result.exit_code == 0
        assert "Unknown model mystery, priced as gpt-4o" in result.output
        assert "$0.0125" in result.output

    def test_estimate_negative_tokens(self):
        """Test negative token counts are rejected by the CLI."""
        result = runner.invoke(app, ["estimate", "gpt-4o", "--", "-5", "10"])
        assert result.exit_code != 0

    def test_replay_command(self, write_yaml):
        """Test replaying recorded tasks prints a summary."""
        replay_path = write_yaml(replay_doc(
            {
                "task_id": "button",
                "model": "gpt-4o",
                "category": "generation",
                "level": "base",
                "input_tokens": 1000,
                "output_tokens": 500,
                "duration_ms": 1200,
                "metrics": {"reusabilityScore": 9, "artifactsProduced": ["Button"]},
            },
            {
                "model": "gpt-4o-mini",
                "category": "review",
                "input_tokens": 2000,
                "output_tokens": 100,
                "succeeded": False,
                "error_message": "timeout",
            },
        ))

        result = runner.invoke(app, ["replay", replay_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Session replay-1" in result.output
        assert "Tasks: 2/2 completed" in result.output
        assert "Success rate: 50.0%" in result.output
        assert "No limit warnings" in result.output
        assert "Hierarchy health:" in result.output

    def test_replay_critical_warning_not_enforced(self, write_yaml):
        """Test a critical warning does not fail without --enforced."""
        replay_path = write_yaml(replay_doc({
            "model": "gpt-4o",
            "category": "generation",
            "input_tokens": 100000,
            "output_tokens": 50000,
        }))

        result = runner.invoke(app, ["replay", replay_path, "--max-session-cost", "1.00"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "CRITICAL" in result.output
        assert "approaching limit ($1.00)" in result.output

    def test_replay_critical_warning_enforced(self, write_yaml):
        """Test --enforced turns a critical warning into a failure."""
        replay_path = write_yaml(replay_doc({
            "model": "gpt-4o",
            "category": "generation",
            "input_tokens": 100000,
            "output_tokens": 50000,
        }))

        result = runner.invoke(app, ["replay", replay_path, "-s", "1.00", "--enforced"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_replay_task_cost_warning(self, write_yaml):
        """Test per-task limit warnings list the offending tasks."""
        replay_path = write_yaml(replay_doc({
            "task_id": "big",
            "model": "gpt-4o",
            "category": "generation",
            "input_tokens": 100000,
            "output_tokens": 0,
        }))

        result = runner.invoke(app, ["replay", replay_path, "-t", "0.10", "-e"])

        # Task warnings are never critical
        assert result.exit_code == EXIT_CODE_PASS
        assert "1 recent tasks exceeded cost limit ($0.10)" in result.output
        assert "big (gpt-4o): $0.5000" in result.output

    def test_replay_projection(self, write_yaml):
        """Test the projection uses configured maturity and remaining tasks."""
        config_path = write_yaml({"projection": {"maturity_tasks": 4}}, "config.yaml")
        replay_path = write_yaml(replay_doc(
            {"model": "gpt-4o", "category": "generation",
             "input_tokens": 1000, "output_tokens": 500},
        ))

        result = runner.invoke(
            app, ["replay", replay_path, "--config", config_path, "--remaining-tasks", "3"]
        )

        assert result.exit_code == EXIT_CODE_PASS
        # 0.0125 + 3 * 0.0125, one of four tasks toward maturity
        assert "Projected cost: $0.0500 (confidence 25%)" in result.output

    def test_replay_missing_file(self, tmp_path):
        """Test a missing replay file fails cleanly."""
        result = runner.invoke(app, ["replay", str(tmp_path / "missing.yaml")])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error:" in result.output

    def test_replay_invalid_document(self, write_yaml):
        """Test a replay file without tasks fails cleanly."""
        result = runner.invoke(app, ["replay", write_yaml({"session_id": "x"})])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "must contain a 'tasks' list" in result.output

    def test_replay_invalid_metrics(self, write_yaml):
        """Test malformed metrics in a replay file fail cleanly."""
        replay_path = write_yaml(replay_doc({
            "model": "gpt-4o",
            "category": "generation",
            "level": "base",
            "input_tokens": 10,
            "output_tokens": 10,
            "metrics": {"reusabilityScore": 11},
        }))

        result = runner.invoke(app, ["replay", replay_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "reusability_score" in result.output


class TestReplayTasks:
    """Test the replay helper directly."""

    def test_replay_builds_ended_session(self):
        """Test tasks are folded into an ended session in order."""
        session = replay_tasks(replay_doc(
            {"model": "gpt-4o", "category": "generation", "input_tokens": 1000,
             "output_tokens": 500, "duration_ms": 250},
            {"model": "gpt-4o", "category": "generation", "input_tokens": 1000,
             "output_tokens": 500, "duration_ms": 750},
        ), EngineConfig())

        assert session.session_id == "replay-1"
        assert session.is_active is False
        assert session.total_cost == Decimal("0.025")
        assert session.tasks["task-1"].duration_ms == 250
        assert session.tasks["task-2"].duration_ms == 750
        assert session.ended_at == session.tasks["task-2"].completed_at

    def test_unknown_task_keys_rejected(self):
        """Test unknown keys in a task entry are rejected."""
        with pytest.raises(ValueError, match="Unknown keys in task 0"):
            replay_tasks(replay_doc({
                "model": "gpt-4o", "category": "generation",
                "input_tokens": 1, "output_tokens": 1, "cost": 5,
            }), EngineConfig())

    def test_missing_required_key(self):
        """Test required task keys are enforced."""
        with pytest.raises(ValueError, match="Missing required 'output_tokens' in task 0"):
            replay_tasks(replay_doc({
                "model": "gpt-4o", "category": "generation", "input_tokens": 1,
            }), EngineConfig())
