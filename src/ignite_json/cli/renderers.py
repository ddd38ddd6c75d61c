from __future__ import annotations

import json
import re
from typing import Iterable

from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ignite_json import __version__
from ignite_json.core import events as ev
from ignite_json.core.stages import CREATE_STAGES, DEPLOY_STAGES

RULE_WIDTH = 64
RULE_LINE = "-" * RULE_WIDTH
STATUS_GLYPHS = {
    "pending": "⏸",
    "running": "⠋",
    "success": "✅",
    "failed": "❌",
    "skipped": "⏭",
    "warning": "⚠️",
}


def run_events(events: Iterable[ev.IgniteEvent], renderer: "Renderer") -> int:
    exit_code = 0
    try:
        for event in events:
            renderer.handle(event)
            if isinstance(event, ev.CommandCompleted):
                exit_code = event.exit_code
    finally:
        renderer.close()
    return exit_code


class Renderer:
    def handle(self, event: ev.IgniteEvent) -> None:  # noqa: D401
        """Handle a single event."""

    def close(self) -> None:
        return None


def _stage_plan(install_deps: bool) -> list[tuple[str, str]]:
    if install_deps:
        return [*CREATE_STAGES, *DEPLOY_STAGES]
    return list(CREATE_STAGES)


class CreateRichRenderer(Renderer):
    def __init__(self, console: Console, *, debug: bool = False):
        self.console = console
        self.debug = debug
        self.is_tty = console.is_terminal
        self.stages: list[tuple[str, str]] = list(CREATE_STAGES)
        self.stage_status: dict[str, str] = {}
        self.stage_elapsed: dict[str, float] = {}
        self._live: Live | None = None
        self._failed: ev.StageFailed | None = None
        self._project_name = ""

    def handle(self, event: ev.IgniteEvent) -> None:
        if isinstance(event, ev.CommandStarted):
            options = event.options or {}
            self._project_name = str(options.get("project_name") or "")
            self.stages = _stage_plan(bool(options.get("install_deps")))
            self.stage_status = {stage_id: "pending" for stage_id, _ in self.stages}
            _print_header(self.console)
            if self.is_tty:
                self._live = Live(self._render(), console=self.console, refresh_per_second=10)
                self._live.__enter__()
            return
        if isinstance(event, ev.StageStarted):
            self.stage_status[event.stage_id] = "running"
            self._refresh()
            return
        if isinstance(event, ev.StageCompleted):
            self.stage_status[event.stage_id] = event.status
            self.stage_elapsed[event.stage_id] = event.duration_ms
            self._refresh()
            return
        if isinstance(event, ev.StageFailed):
            self.stage_status[event.stage_id] = "failed"
            self.stage_elapsed[event.stage_id] = event.duration_ms
            self._failed = event
            self._refresh()
            return
        if isinstance(event, ev.StageOutput):
            self.console.print(Text(event.line))
            return
        if isinstance(event, ev.SignalCaptured):
            if event.stage_id == "login":
                self.console.print(Text(f"\n{event.signal}\n", style="cyan"))
            return
        if isinstance(event, ev.TemplateFetched):
            self.console.print(
                f"[green]✔[/green] ignite-json template downloaded successfully, "
                f"[ {self._project_name} ] directory has been created"
            )
            return
        if isinstance(event, ev.KvWritten):
            self.console.print(f"[green]✔[/green] {event.records} KV records written to {event.path}")
            return
        if isinstance(event, ev.Debug):
            if self.debug:
                self.console.print(f"[dim]debug: {_redact(event.message)}[/dim]")
            return
        if isinstance(event, ev.ManualStepsRequired):
            self._stop_live()
            self.console.print(_manual_steps_panel(event))
            return
        if isinstance(event, ev.DeployReady):
            self._stop_live()
            body = "\n".join(
                [
                    "[white on green] Awesome! ✨ [/white on green]",
                    "Your JSON Server is ready 🥳",
                    f"[green]Link 🔗:[/green] [magenta]{event.url}[/magenta]",
                ]
            )
            self.console.print(Panel(body, title="Deployed", box=box.ROUNDED, title_align="left"))
            return
        if isinstance(event, ev.Warning):
            self._stop_live()
            self.console.print(_warning_panel(event))
            return
        if isinstance(event, ev.CommandCompleted):
            self._stop_live()
            if not event.ok:
                self.console.print(_failure_panel(self._failed))

    def close(self) -> None:
        self._stop_live()

    def _stop_live(self) -> None:
        if self._live:
            self._live.__exit__(None, None, None)
            self._live = None

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._render())

    def _render(self) -> Group:
        total = len(self.stages)
        table = Table(show_header=True, box=box.MINIMAL, show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Stage")
        table.add_column("Status")
        table.add_column("Time", justify="right")
        for index, (stage_id, label) in enumerate(self.stages, start=1):
            status = self.stage_status.get(stage_id, "pending")
            elapsed = self.stage_elapsed.get(stage_id)
            glyph = STATUS_GLYPHS.get(status, "?")
            duration = _format_duration(elapsed) if elapsed is not None else ""
            table.add_row(f"{index}/{total}", label, f"{glyph} {status}", duration)
        return Group(Panel(table, title="Stages", box=box.ROUNDED, title_align="left"))


class CreatePlainRenderer(Renderer):
    def __init__(self, console: Console, *, debug: bool = False):
        self.console = console
        self.debug = debug
        self.stages: list[tuple[str, str]] = list(CREATE_STAGES)
        self._failed: ev.StageFailed | None = None

    def handle(self, event: ev.IgniteEvent) -> None:
        if isinstance(event, ev.CommandStarted):
            options = event.options or {}
            self.stages = _stage_plan(bool(options.get("install_deps")))
            _print_header(self.console)
            return
        if isinstance(event, ev.StageStarted):
            index = _stage_index(event.stage_id, self.stages)
            self.console.print(_format_stage_start_line(index, event.label, len(self.stages)))
            return
        if isinstance(event, ev.StageCompleted):
            label = _stage_label(event.stage_id, self.stages)
            index = _stage_index(event.stage_id, self.stages)
            self.console.print(
                _format_stage_line(index, label, event.status, event.duration_ms, len(self.stages))
            )
            return
        if isinstance(event, ev.StageFailed):
            self._failed = event
            label = _stage_label(event.stage_id, self.stages)
            index = _stage_index(event.stage_id, self.stages)
            line = _format_stage_line(index, label, "failed", event.duration_ms, len(self.stages))
            details = [f"FAIL: {_redact(event.message)}"]
            if event.hint:
                details.append(f"HINT: {_redact(event.hint)}")
            self.console.print("\n".join([line, *details]), markup=False)
            return
        if isinstance(event, ev.StageOutput):
            self.console.print(event.line, markup=False, highlight=False)
            return
        if isinstance(event, ev.SignalCaptured):
            self.console.print(f"SIGNAL {event.stage_id}: {event.signal}", markup=False)
            return
        if isinstance(event, ev.TemplateFetched):
            self.console.print(f"TEMPLATE OK {event.template} -> {event.path}", markup=False)
            return
        if isinstance(event, ev.KvWritten):
            self.console.print(f"KV OK {event.path} records={event.records}", markup=False)
            return
        if isinstance(event, ev.Debug):
            if self.debug:
                self.console.print(f"DEBUG {_redact(event.message)}", markup=False)
            return
        if isinstance(event, ev.ManualStepsRequired):
            self.console.print("Installation skipped, run the following commands to deploy:")
            for line in event.commands:
                self.console.print(f"> {line}", markup=False)
            return
        if isinstance(event, ev.DeployReady):
            self.console.print(f"DEPLOY OK {event.url}", markup=False)
            return
        if isinstance(event, ev.Warning):
            line = f"Warning: {_redact(event.message)}"
            if event.hint:
                line = f"{line}\nHINT: {_redact(event.hint)}"
            self.console.print(line, markup=False)
            return
        if isinstance(event, ev.CommandCompleted) and not event.ok and self._failed is None:
            self.console.print("Error: create failed")


class JsonLinesRenderer(Renderer):
    def __init__(self, console: Console, *, debug: bool = False):
        self.console = console
        self.debug = debug

    def handle(self, event: ev.IgniteEvent) -> None:
        if isinstance(event, ev.Debug) and not self.debug:
            return
        self.console.print(
            json.dumps(event.to_dict(), sort_keys=True),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


def _print_header(console: Console) -> None:
    console.print(
        "\n".join(
            [
                f"[bold blue]I G N I T E ⚡ J S O N[/bold blue] v{__version__}",
                "[magenta]Run: [ create-ignite-json -h ] for help[/magenta]",
                RULE_LINE,
            ]
        )
    )


def _manual_steps_panel(event: ev.ManualStepsRequired) -> Panel:
    lines = "\n".join(f"> {command}" for command in event.commands)
    body = Text.assemble(
        Text("⚠  you will need to do it manually\n\n", style="yellow"),
        Text("Run the following commands to deploy ignite-json:\n", style="magenta"),
        Text(lines),
    )
    return Panel(body, title="Next steps", box=box.ROUNDED, title_align="left")


def _warning_panel(event: ev.Warning) -> Panel:
    body = Text(_redact(event.message), style="yellow")
    if event.hint:
        body.append(f"\n{_redact(event.hint)}", style="cyan")
    return Panel(
        body,
        title="[orange1]Warning[/orange1]",
        box=box.ROUNDED,
        title_align="left",
        border_style="orange1",
    )


def _failure_panel(event: ev.StageFailed | None) -> Panel:
    if event is None:
        return Panel(Text("create failed"), title="Failed", box=box.ROUNDED, title_align="left")
    body = Text.assemble(
        Text(f"stage: {event.stage_id}\n"),
        Text(_redact(event.message), style="red"),
    )
    if event.hint:
        body.append(f"\nhint: {_redact(event.hint)}")
    return Panel(body, title="Failed", box=box.ROUNDED, title_align="left", border_style="red")


def _format_duration(elapsed_ms: float) -> str:
    if elapsed_ms < 1000:
        return f"{elapsed_ms:.0f}ms"
    seconds = elapsed_ms / 1000
    if seconds < 10:
        return f"{seconds:.2f}s"
    return f"{seconds:.1f}s"


_REDACT_PATTERN = re.compile(
    r"(?i)\b(authorization|token|secret|password|api_key)\b\s*[:=]\s*[^\s]+"
)


def _redact(text: str) -> str:
    if not text:
        return text
    return _REDACT_PATTERN.sub(r"\1: <redacted>", text)


def _format_stage_line(
    index: int,
    label: str,
    status: str,
    elapsed_ms: float | None,
    total: int,
) -> str:
    glyph = STATUS_GLYPHS.get(status, "?")
    word = {
        "success": "OK",
        "failed": "FAIL",
        "skipped": "SKIP",
        "warning": "WARN",
    }.get(status, status.upper())
    duration = f"  {_format_duration(elapsed_ms)}" if elapsed_ms is not None else ""
    padding = "." * max(2, 36 - len(label))
    return f"[{index}/{total}] {label} {padding} {glyph} {word}{duration}"


def _format_stage_start_line(index: int, label: str, total: int) -> str:
    padding = "." * max(2, 36 - len(label))
    return f"[{index}/{total}] {label} {padding} START"


def _stage_label(stage_id: str, mapping: list[tuple[str, str]]) -> str:
    for key, label in mapping:
        if key == stage_id:
            return label
    return stage_id


def _stage_index(stage_id: str, mapping: list[tuple[str, str]]) -> int:
    for index, (key, _label) in enumerate(mapping, start=1):
        if key == stage_id:
            return index
    return 0
