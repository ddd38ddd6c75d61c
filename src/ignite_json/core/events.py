from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class IgniteEvent:
    ts: float = field(default_factory=time.perf_counter)
    level: str = "INFO"
    command: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class CommandStarted(IgniteEvent):
    type: str = "CommandStarted"
    project_dir: Path | None = None
    options: dict[str, Any] | None = None


@dataclass(frozen=True)
class CommandCompleted(IgniteEvent):
    type: str = "CommandCompleted"
    ok: bool = True
    exit_code: int = 0


@dataclass(frozen=True)
class StageStarted(IgniteEvent):
    type: str = "StageStarted"
    stage_id: str = ""
    label: str = ""


@dataclass(frozen=True)
class StageCompleted(IgniteEvent):
    type: str = "StageCompleted"
    stage_id: str = ""
    duration_ms: float = 0.0
    status: str = "success"


@dataclass(frozen=True)
class StageFailed(IgniteEvent):
    type: str = "StageFailed"
    level: str = "ERROR"
    stage_id: str = ""
    duration_ms: float = 0.0
    error_code: str = ""
    message: str = ""
    hint: str | None = None


@dataclass(frozen=True)
class Warning(IgniteEvent):
    type: str = "Warning"
    level: str = "WARNING"
    code: str = ""
    message: str = ""
    hint: str | None = None


@dataclass(frozen=True)
class Debug(IgniteEvent):
    type: str = "Debug"
    level: str = "DEBUG"
    message: str = ""
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class PackageManagersDetected(IgniteEvent):
    type: str = "PackageManagersDetected"
    invoker: str = ""
    installed: list[str] = field(default_factory=list)
    chosen: str | None = None


@dataclass(frozen=True)
class TemplateFetched(IgniteEvent):
    type: str = "TemplateFetched"
    template: str = ""
    path: Path | None = None


@dataclass(frozen=True)
class KvWritten(IgniteEvent):
    type: str = "KvWritten"
    path: Path | None = None
    records: int = 0
    bytes: int = 0


@dataclass(frozen=True)
class StageOutput(IgniteEvent):
    type: str = "StageOutput"
    stage_id: str = ""
    line: str = ""


@dataclass(frozen=True)
class SignalCaptured(IgniteEvent):
    type: str = "SignalCaptured"
    stage_id: str = ""
    signal: str = ""


@dataclass(frozen=True)
class ManualStepsRequired(IgniteEvent):
    type: str = "ManualStepsRequired"
    project_name: str = ""
    commands: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeployReady(IgniteEvent):
    type: str = "DeployReady"
    url: str = ""


def _serialize(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    return value
