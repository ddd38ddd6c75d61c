from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

from ignite_json.core.events import (
    Debug,
    SignalCaptured,
    StageCompleted,
    StageFailed,
    StageOutput,
    StageStarted,
)
from ignite_json.core.orchestrator import (
    ABORTED,
    FAILED,
    IDLE,
    NO_SIGNAL,
    SIGNAL,
    SUCCEEDED,
    CommandOrchestrator,
)
from ignite_json.core.stages import OutputPolicy, Stage

DEPLOY_PATTERN = r"https://\S+?\.example-platform\.dev"


def _stage(name: str, policy: OutputPolicy | None = None) -> Stage:
    return Stage(name, name.title(), "npm", ("run", name), policy or OutputPolicy.suppressed())


def test_runs_all_stages_in_order(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner()
    stages = [_stage("one"), _stage("two"), _stage("three")]
    orchestrator = CommandOrchestrator(stages, cwd=tmp_path, spawner=spawner)

    assert orchestrator.state == IDLE
    events = list(orchestrator.run())

    assert orchestrator.state == SUCCEEDED
    assert spawner.spawned_names == ["one", "two", "three"]
    started = [event.stage_id for event in events if isinstance(event, StageStarted)]
    completed = [event.stage_id for event in events if isinstance(event, StageCompleted)]
    assert started == completed == ["one", "two", "three"]
    assert [result.outcome for result in orchestrator.results] == [NO_SIGNAL] * 3


def test_stderr_in_middle_stage_aborts_pipeline(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner(
        {
            "one": [("stdout", "ok"), ("exit", "0")],
            "two": [("stdout", "working"), ("stderr", "boom: remote refused"), ("exit", "1")],
        }
    )
    stages = [_stage("one"), _stage("two"), _stage("three")]
    orchestrator = CommandOrchestrator(stages, cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert orchestrator.state == ABORTED
    assert spawner.spawned_names == ["one", "two"]
    assert orchestrator.current_stage is not None
    assert orchestrator.current_stage.name == "two"
    failed = [event for event in events if isinstance(event, StageFailed)]
    assert len(failed) == 1
    assert failed[0].stage_id == "two"
    assert "npm run two" in failed[0].message
    assert "boom: remote refused" in failed[0].message
    assert orchestrator.results[-1].outcome == FAILED
    assert not any(isinstance(event, StageStarted) and event.stage_id == "three" for event in events)


def test_spawn_error_rejects_like_stderr(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner({"one": [("oserror", "No such file or directory: 'npm'")]})
    orchestrator = CommandOrchestrator([_stage("one"), _stage("two")], cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert orchestrator.state == ABORTED
    assert spawner.spawned_names == ["one"]
    failed = next(event for event in events if isinstance(event, StageFailed))
    assert "Unexpected error happened when running [ npm run one ]" in failed.message


def test_scraped_stage_settles_on_first_match(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner(
        {
            "deploy": [
                ("stdout", "Uploading...\n"),
                ("stdout", "Published https://my-app.example-platform.dev (1.2 sec)\n"),
                ("stdout", "https://second.example-platform.dev\n"),
                ("stderr", "late noise is never read"),
                ("exit", "0"),
            ]
        }
    )
    deploy = _stage("deploy", OutputPolicy.scraped(DEPLOY_PATTERN))
    orchestrator = CommandOrchestrator([deploy], cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert orchestrator.state == SUCCEEDED
    result = orchestrator.result_for("deploy")
    assert result is not None
    assert result.outcome == SIGNAL
    assert result.signal == "https://my-app.example-platform.dev"
    assert result.exit_code is None
    assert spawner.consumed["deploy"] == 2
    signals = [event.signal for event in events if isinstance(event, SignalCaptured)]
    assert signals == ["https://my-app.example-platform.dev"]


def test_scraped_stage_without_match_is_soft(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner({"deploy": [("stdout", "Deployed, no url today"), ("exit", "0")]})
    deploy = _stage("deploy", OutputPolicy.scraped(DEPLOY_PATTERN))
    orchestrator = CommandOrchestrator([deploy, _stage("after")], cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert orchestrator.state == SUCCEEDED
    assert orchestrator.results[0].outcome == NO_SIGNAL
    assert orchestrator.results[0].exit_code == 0
    completed = next(event for event in events if isinstance(event, StageCompleted))
    assert completed.status == "warning"
    assert spawner.spawned_names == ["deploy", "after"]


def test_scraped_stage_without_settle_waits_for_exit(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner(
        {
            "login": [
                ("stdout", "Visit this link to authenticate: https://auth.example/x\n"),
                ("stdout", "Successfully logged in.\n"),
                ("exit", "0"),
            ]
        }
    )
    login = _stage("login", OutputPolicy.scraped(r".*link to authenticate.*", settle_on_match=False))
    orchestrator = CommandOrchestrator([login], cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert spawner.consumed["login"] == 3
    result = orchestrator.results[0]
    assert result.outcome == SIGNAL
    assert result.signal == "Visit this link to authenticate: https://auth.example/x"
    assert result.exit_code == 0
    captured_index = next(i for i, event in enumerate(events) if isinstance(event, SignalCaptured))
    completed_index = next(i for i, event in enumerate(events) if isinstance(event, StageCompleted))
    assert captured_index < completed_index


def test_passthrough_echoes_lines_and_suppressed_does_not(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner(
        {
            "loud": [("stdout", "line 1\n"), ("stdout", "line 2\n"), ("exit", "0")],
            "quiet": [("stdout", "hidden"), ("exit", "0")],
        }
    )
    stages = [_stage("loud", OutputPolicy.passthrough()), _stage("quiet")]
    orchestrator = CommandOrchestrator(stages, cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    output = [(event.stage_id, event.line) for event in events if isinstance(event, StageOutput)]
    assert output == [("loud", "line 1"), ("loud", "line 2")]


def test_passthrough_reassembles_lines_split_across_chunks(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner(
        {"loud": [("stdout", "li"), ("stdout", "ne 1\r\nline 2\nta"), ("stdout", "il"), ("exit", "0")]}
    )
    orchestrator = CommandOrchestrator(
        [_stage("loud", OutputPolicy.passthrough())], cwd=tmp_path, spawner=spawner
    )

    events = list(orchestrator.run())

    lines = [event.line for event in events if isinstance(event, StageOutput)]
    assert lines == ["line 1", "line 2", "tail"]


def test_scraped_match_split_across_chunks(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner(
        {
            "deploy": [
                ("stdout", "Published https://my-app.exam"),
                ("stdout", "ple-platform.dev (1.2 sec)\n"),
                ("exit", "0"),
            ]
        }
    )
    deploy = _stage("deploy", OutputPolicy.scraped(DEPLOY_PATTERN))
    orchestrator = CommandOrchestrator([deploy], cwd=tmp_path, spawner=spawner)

    list(orchestrator.run())

    assert orchestrator.results[0].signal == "https://my-app.example-platform.dev"


def test_login_without_marker_completes_without_warning(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner({"login": [("stdout", "Already logged in.\n"), ("exit", "0")]})
    login = _stage("login", OutputPolicy.scraped(r".*link to authenticate.*", settle_on_match=False))
    orchestrator = CommandOrchestrator([login], cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert orchestrator.results[0].outcome == NO_SIGNAL
    completed = next(event for event in events if isinstance(event, StageCompleted))
    assert completed.status == "success"


def test_nonzero_exit_without_stderr_is_not_a_failure(tmp_path: Path, fake_spawner) -> None:
    spawner = fake_spawner({"one": [("exit", "3")]})
    orchestrator = CommandOrchestrator([_stage("one")], cwd=tmp_path, spawner=spawner)

    events = list(orchestrator.run())

    assert orchestrator.state == SUCCEEDED
    assert orchestrator.results[0].exit_code == 3
    assert any(isinstance(event, Debug) and "exited with code 3" in event.message for event in events)


def test_orchestrator_runs_only_once(tmp_path: Path, fake_spawner) -> None:
    orchestrator = CommandOrchestrator([_stage("one")], cwd=tmp_path, spawner=fake_spawner())
    list(orchestrator.run())

    with pytest.raises(RuntimeError, match="already ran"):
        list(orchestrator.run())


def test_output_policy_rejects_scraped_without_pattern() -> None:
    with pytest.raises(ValueError, match="requires a pattern"):
        OutputPolicy(kind="scraped")
    with pytest.raises(ValueError, match="Unknown output policy"):
        OutputPolicy(kind="loud")


def _python_stage(name: str, code: str, policy: OutputPolicy | None = None) -> Stage:
    return Stage(name, name, sys.executable, ("-c", code), policy or OutputPolicy.suppressed())


@pytest.mark.integration
def test_real_processes_stop_after_stderr(tmp_path: Path) -> None:
    marker = tmp_path / "third-ran"
    stages = [
        _python_stage("first", "print('hello')"),
        _python_stage("second", "import sys; sys.stderr.write('fatal: nope\\n')"),
        _python_stage("third", f"open({str(marker)!r}, 'w').close()"),
    ]
    orchestrator = CommandOrchestrator(stages, cwd=tmp_path)

    events = list(orchestrator.run())

    assert orchestrator.state == ABORTED
    assert [result.stage.name for result in orchestrator.results] == ["first", "second"]
    assert "fatal: nope" in (orchestrator.results[-1].error or "")
    assert not marker.exists()
    assert any(isinstance(event, StageFailed) and event.stage_id == "second" for event in events)


@pytest.mark.integration
def test_real_process_signal_resolves_before_exit(tmp_path: Path) -> None:
    code = (
        "import sys, time\n"
        "print('https://my-app.example-platform.dev', flush=True)\n"
        "time.sleep(2)\n"
        "print('https://late.example-platform.dev', flush=True)\n"
    )
    stage = _python_stage("deploy", code, OutputPolicy.scraped(DEPLOY_PATTERN))
    orchestrator = CommandOrchestrator([stage], cwd=tmp_path)

    list(orchestrator.run())

    result = orchestrator.results[0]
    assert result.signal == "https://my-app.example-platform.dev"
    assert result.exit_code is None


@pytest.mark.integration
def test_real_process_signal_without_newline_resolves_before_exit(tmp_path: Path) -> None:
    code = (
        "import sys, time\n"
        "sys.stdout.write('https://my-app.example-platform.dev')\n"
        "sys.stdout.flush()\n"
        "time.sleep(3)\n"
    )
    stage = _python_stage("deploy", code, OutputPolicy.scraped(DEPLOY_PATTERN))
    orchestrator = CommandOrchestrator([stage], cwd=tmp_path)

    started = time.perf_counter()
    list(orchestrator.run())
    elapsed = time.perf_counter() - started

    result = orchestrator.results[0]
    assert result.signal == "https://my-app.example-platform.dev"
    assert result.exit_code is None
    assert elapsed < 2


@pytest.mark.integration
def test_real_process_runs_in_project_directory(tmp_path: Path) -> None:
    project = tmp_path / "my-app"
    project.mkdir()
    stage = _python_stage("where", "import os; print(os.getcwd())", OutputPolicy.passthrough())
    orchestrator = CommandOrchestrator([stage], cwd=project)

    events = list(orchestrator.run())

    lines = [event.line for event in events if isinstance(event, StageOutput)]
    assert Path(lines[0]).resolve() == project.resolve()


@pytest.mark.integration
def test_real_missing_executable_is_a_spawn_error(tmp_path: Path) -> None:
    stage = Stage("install", "Install", "missing-binary-ignite-3310", ("install",))
    orchestrator = CommandOrchestrator([stage], cwd=tmp_path)

    list(orchestrator.run())

    assert orchestrator.state == ABORTED
    assert "missing-binary-ignite-3310 install" in (orchestrator.results[0].error or "")
