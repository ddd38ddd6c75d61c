"""Sequential runner for the deploy stages.

The orchestrator is a generator of events. It spawns one process per stage,
applies the stage's output policy to stdout as chunks arrive and aborts the
pipeline on the first stderr line or spawn error. Nothing is retried, killed
or rolled back.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generator, Iterable, Iterator, Sequence

from ignite_json.core import events as ev
from ignite_json.core.process import EXIT, STDERR, StreamItem, spawn_stage_process
from ignite_json.core.scraper import scrape
from ignite_json.core.stages import PASSTHROUGH, SCRAPED, Stage

IDLE = "idle"
RUNNING = "running"
SUCCEEDED = "succeeded"
ABORTED = "aborted"

SIGNAL = "signal"
NO_SIGNAL = "no_signal"
FAILED = "failed"

Spawner = Callable[[Stage, Path], Iterable[StreamItem]]


@dataclass(frozen=True)
class StageResult:
    stage: Stage
    outcome: str
    signal: str | None = None
    error: str | None = None
    exit_code: int | None = None

    @property
    def failed(self) -> bool:
        return self.outcome == FAILED


class CommandOrchestrator:
    def __init__(
        self,
        stages: Sequence[Stage],
        *,
        cwd: Path,
        spawner: Spawner = spawn_stage_process,
        command: str = "create",
    ):
        self.stages = list(stages)
        self.cwd = cwd
        self.command = command
        self._spawner = spawner
        self.state = IDLE
        self.current: int | None = None
        self.results: list[StageResult] = []

    @property
    def current_stage(self) -> Stage | None:
        if self.current is None:
            return None
        return self.stages[self.current]

    def result_for(self, name: str) -> StageResult | None:
        for result in self.results:
            if result.stage.name == name:
                return result
        return None

    def run(self) -> Iterator[ev.IgniteEvent]:
        if self.state != IDLE:
            raise RuntimeError(f"Orchestrator already ran (state={self.state}).")
        for index, stage in enumerate(self.stages):
            self.state = RUNNING
            self.current = index
            yield ev.StageStarted(command=self.command, stage_id=stage.name, label=stage.label)
            started = time.perf_counter()
            result = yield from self._run_stage(stage)
            self.results.append(result)
            duration_ms = _elapsed_ms(started)
            if result.failed:
                yield ev.StageFailed(
                    command=self.command,
                    stage_id=stage.name,
                    duration_ms=duration_ms,
                    error_code="stage_error",
                    message=result.error or "",
                )
                self.state = ABORTED
                return
            status = "success"
            if (
                stage.policy.kind == SCRAPED
                and stage.policy.settle_on_match
                and result.outcome == NO_SIGNAL
            ):
                status = "warning"
            yield ev.StageCompleted(
                command=self.command,
                stage_id=stage.name,
                duration_ms=duration_ms,
                status=status,
            )
        self.state = SUCCEEDED

    def _run_stage(self, stage: Stage) -> Generator[ev.IgniteEvent, None, StageResult]:
        yield ev.Debug(
            command=self.command,
            message=f"spawn {stage.display}",
            data={"stage": stage.name, "cwd": str(self.cwd), "policy": stage.policy.kind},
        )
        try:
            output = self._spawner(stage, self.cwd)
        except OSError as exc:
            return StageResult(
                stage=stage,
                outcome=FAILED,
                error=(
                    f"Unexpected error happened when running [ {stage.display} ]\n"
                    f"Error Details:\n{exc}"
                ),
            )

        policy = stage.policy
        signal: str | None = None
        # stdout after the last newline; chunks are not line aligned
        pending = ""
        for channel, text in output:
            if channel == EXIT:
                if policy.kind == PASSTHROUGH and pending:
                    yield ev.StageOutput(
                        command=self.command, stage_id=stage.name, line=pending.rstrip("\r")
                    )
                exit_code = int(text)
                yield ev.Debug(
                    command=self.command,
                    message=f"{stage.display} exited with code {exit_code}",
                    data={"stage": stage.name, "exit_code": exit_code},
                )
                return StageResult(
                    stage=stage,
                    outcome=SIGNAL if signal is not None else NO_SIGNAL,
                    signal=signal,
                    exit_code=exit_code,
                )
            if channel == STDERR:
                return StageResult(
                    stage=stage,
                    outcome=FAILED,
                    error=(
                        f"Unexpected error happened with [ {stage.display} ] command\n"
                        f"Error Details:\n{text.rstrip()}"
                    ),
                )
            if policy.kind == PASSTHROUGH:
                *lines, pending = (pending + text).split("\n")
                for line in lines:
                    yield ev.StageOutput(
                        command=self.command, stage_id=stage.name, line=line.rstrip("\r")
                    )
            elif policy.kind == SCRAPED and signal is None:
                buffered = pending + text
                pending = buffered.rsplit("\n", 1)[-1]
                # an unterminated tail is scanned too so a prompt without a newline is seen
                match = scrape(buffered, policy.pattern or "")
                if match is None:
                    continue
                signal = match
                yield ev.SignalCaptured(command=self.command, stage_id=stage.name, signal=match)
                if policy.settle_on_match:
                    return StageResult(stage=stage, outcome=SIGNAL, signal=match)
        return StageResult(
            stage=stage,
            outcome=SIGNAL if signal is not None else NO_SIGNAL,
            signal=signal,
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
