from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from conftest import ScriptedTransport, failing
from seed_fetcher.app import EXIT_ABORTED, EXIT_CRASHED, EXIT_REFINE, EXIT_STARTUP, AppState, app
from seed_fetcher.config import ConfigRepository
from seed_fetcher.engine import HookSet
from seed_fetcher.orchestrator import Orchestrator

runner = CliRunner()


@pytest.fixture
def job_file(tmp_path: Path, sample_seed: Path) -> Path:
    path = tmp_path / "job.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "run_type": "CLI",
                "task_interval": 1,
                "randomize_seed_order": False,
                "max_record_fail_count": 2,
                "max_fail_count": 2,
                "sleep_intervals_after_fail": 0,
                "columns": {"zipcode": 0, "number": 1, "housenumberext": 2},
                "seed_path": sample_seed.name,
                "response_log_path": "responses.jsonl",
                "refined_path": "refined.csv",
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def wire_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, fake_clock, manual_driver):
    monkeypatch.setenv("SEED_FETCHER_HOME", str(tmp_path))
    monkeypatch.setattr("seed_fetcher.app.build_state", lambda verbose: AppState(repository=ConfigRepository()))

    def _wire(transport=None, **hooks) -> ScriptedTransport:
        transport = transport or ScriptedTransport()

        def _build(config, verbose: bool = False) -> Orchestrator:
            return Orchestrator(
                config,
                hooks=HookSet(**hooks),
                transport=transport,
                clock=fake_clock,
                driver_factory=manual_driver,
            )

        monkeypatch.setattr("seed_fetcher.app.build_orchestrator", _build)
        return transport

    return _wire


def test_cli_run_completes(wire_cli, job_file: Path, tmp_path: Path) -> None:
    transport = wire_cli()

    result = runner.invoke(app, ["run", str(job_file)])

    assert result.exit_code == 0, result.stdout
    assert "run result" in result.stdout
    assert "Fetched" in result.stdout
    assert "Completed." in result.stdout
    assert len(transport.calls) == 4
    assert len((tmp_path / "responses.jsonl").read_text(encoding="utf-8").splitlines()) == 4


def test_cli_run_quiet_with_limit(wire_cli, job_file: Path) -> None:
    wire_cli()
    result = runner.invoke(app, ["run", str(job_file), "--quiet", "--limit", "1"])
    assert result.exit_code == 0, result.stdout
    assert "done: fetched 1, skipped 0, abandoned 0" in result.stdout


def test_cli_run_reports_abort(wire_cli, job_file: Path) -> None:
    wire_cli(ScriptedTransport({"1011AB": [failing()]}))
    result = runner.invoke(app, ["run", str(job_file), "--quiet"])
    assert result.exit_code == EXIT_ABORTED
    assert "Aborted" in result.stdout


def test_cli_run_reports_write_crash(wire_cli, job_file: Path) -> None:
    wire_cli(ScriptedTransport({"1011AB": [{"value": object()}]}))
    result = runner.invoke(app, ["run", str(job_file), "--quiet"])
    assert result.exit_code == EXIT_CRASHED
    assert "Run crashed" in result.stdout


def test_cli_run_rejects_missing_job(wire_cli, tmp_path: Path) -> None:
    wire_cli()
    result = runner.invoke(app, ["run", str(tmp_path / "absent.yaml")])
    assert result.exit_code == EXIT_STARTUP
    assert "Cannot start" in result.stdout


def test_cli_run_rejects_missing_seed_file(wire_cli, job_file: Path) -> None:
    wire_cli()
    config = yaml.safe_load(job_file.read_text(encoding="utf-8"))
    config["seed_path"] = "nope.csv"
    job_file.write_text(yaml.safe_dump(config), encoding="utf-8")

    result = runner.invoke(app, ["run", str(job_file), "--quiet"])

    assert result.exit_code == EXIT_STARTUP
    assert "Cannot read seed file" in result.stdout

    status = runner.invoke(app, ["status", str(job_file)])
    assert status.exit_code == EXIT_STARTUP


def test_cli_status_and_reset(wire_cli, job_file: Path, tmp_path: Path) -> None:
    wire_cli()
    runner.invoke(app, ["run", str(job_file), "--quiet", "--limit", "3"])

    status = runner.invoke(app, ["status", str(job_file)])
    assert status.exit_code == 0, status.stdout
    assert "Remaining" in status.stdout

    cancelled = runner.invoke(app, ["reset", str(job_file)], input="n\n")
    assert cancelled.exit_code == 0
    assert "Cancelled." in cancelled.stdout
    assert (tmp_path / "responses.jsonl").exists()

    reset = runner.invoke(app, ["reset", str(job_file), "--yes"])
    assert reset.exit_code == 0, reset.stdout
    assert not (tmp_path / "responses.jsonl").exists()


def test_cli_refine(wire_cli, job_file: Path, tmp_path: Path) -> None:
    wire_cli(refine=lambda outcome: {"echo": outcome.payload["echo"]})
    runner.invoke(app, ["run", str(job_file), "--quiet"])

    result = runner.invoke(app, ["refine", str(job_file)])

    assert result.exit_code == 0, result.stdout
    assert "Created" in result.stdout
    lines = (tmp_path / "refined.csv").read_bytes().decode("utf-8").split("\r\n")
    assert lines[0] == "zipcode,number,housenumberext,echo"
    assert lines[1] == "1011AB,1,,1011AB"


def test_cli_refine_failures(wire_cli, job_file: Path) -> None:
    wire_cli()
    runner.invoke(app, ["run", str(job_file), "--quiet"])
    missing_hook = runner.invoke(app, ["refine", str(job_file)])
    assert missing_hook.exit_code == EXIT_STARTUP

    wire_cli(refine=lambda outcome: {"a": 1} if outcome.ordinal == 1 else {"b": 1})
    inconsistent = runner.invoke(app, ["refine", str(job_file)])
    assert inconsistent.exit_code == EXIT_REFINE
    assert "Reassembly failed" in inconsistent.stdout


def test_cli_init_writes_template(wire_cli, tmp_path: Path) -> None:
    wire_cli()
    target = tmp_path / "new-job.yaml"

    first = runner.invoke(app, ["init", str(target)])
    assert first.exit_code == 0, first.stdout
    assert "run_type" in target.read_text(encoding="utf-8")

    second = runner.invoke(app, ["init", str(target)])
    assert second.exit_code == EXIT_STARTUP

    forced = runner.invoke(app, ["init", str(target), "--force"])
    assert forced.exit_code == 0


def test_cli_log_commands(wire_cli, tmp_path: Path) -> None:
    wire_cli()
    jobs_dir = tmp_path / "logs" / "jobs"
    jobs_dir.mkdir(parents=True)
    (jobs_dir / "seeds.log").write_text("first\nsecond\nthird\n", encoding="utf-8")

    listed = runner.invoke(app, ["log", "list"])
    assert listed.exit_code == 0, listed.stdout
    assert "seeds" in listed.stdout

    shown = runner.invoke(app, ["log", "show", "seeds", "--lines", "2"])
    assert shown.exit_code == 0, shown.stdout
    assert "second" in shown.stdout
    assert "third" in shown.stdout
    assert "first" not in shown.stdout

    empty = runner.invoke(app, ["log", "show", "absent"])
    assert "No log entries." in empty.stdout
