from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from ignite_json.config.model import Settings
from ignite_json.core import events as ev
from ignite_json.core.kv import KvTransformError, convert_json_db
from ignite_json.core.orchestrator import ABORTED, CommandOrchestrator, Spawner
from ignite_json.core.package_managers import detect_installed, detect_invoker
from ignite_json.core.process import spawn_stage_process
from ignite_json.core.project_name import ProjectNameError, validate_project_name
from ignite_json.core.stages import CREATE_STAGES, deploy_stages, manual_commands
from ignite_json.plugins.registry import load_fetcher
from ignite_json.sources.template import TemplateFetchError, split_template

COMMAND = "create"
STAGE_LABELS = dict(CREATE_STAGES)


class TemplateFetcher(Protocol):
    def fetch(self, location: str, target: Path) -> Path: ...


def create_events(
    *,
    project_name: str,
    json_db: Path,
    install_deps: bool,
    package_manager: str | None = None,
    installed: list[str] | None = None,
    settings: Settings | None = None,
    base_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
    fetcher: TemplateFetcher | None = None,
    spawner: Spawner = spawn_stage_process,
) -> Iterable[ev.IgniteEvent]:
    settings = settings or Settings()
    base_dir = (base_dir or Path.cwd()).resolve()
    project_dir = base_dir / project_name
    if not json_db.is_absolute():
        json_db = base_dir / json_db

    options: dict[str, Any] = {
        "project_name": project_name,
        "json_db": str(json_db),
        "install_deps": install_deps,
        "package_manager": package_manager,
        "template": settings.template,
    }
    yield ev.CommandStarted(command=COMMAND, project_dir=project_dir, options=options)

    stage_id = "resolve_package_manager"
    yield ev.StageStarted(command=COMMAND, stage_id=stage_id, label=STAGE_LABELS[stage_id])
    started = time.perf_counter()
    invoker = detect_invoker(
        environ,
        known=settings.package_managers,
        fallback=settings.fallback_package_manager,
    )
    chosen = package_manager or invoker
    if install_deps:
        if installed is None:
            installed = detect_installed(settings.package_managers)
        if not installed:
            yield from _fail(
                stage_id,
                started,
                "no_package_manager",
                "There is no package managers found!, You must install one",
                hint=f"Install one of: {', '.join(settings.package_managers)}",
            )
            return
        if package_manager is None and invoker not in installed:
            chosen = installed[0]
        if chosen not in installed:
            yield from _fail(
                stage_id,
                started,
                "package_manager_unavailable",
                f"Package manager [ {chosen} ] is not installed.",
                hint=f"Installed: {', '.join(installed)}",
            )
            return
    elif package_manager is not None and package_manager not in settings.package_managers:
        yield from _fail(
            stage_id,
            started,
            "unknown_package_manager",
            f"Unknown package manager: {package_manager}",
        )
        return
    yield ev.PackageManagersDetected(
        command=COMMAND,
        invoker=invoker,
        installed=list(installed or []),
        chosen=chosen,
    )
    yield ev.StageCompleted(command=COMMAND, stage_id=stage_id, duration_ms=_elapsed_ms(started))

    stage_id = "validate_inputs"
    yield ev.StageStarted(command=COMMAND, stage_id=stage_id, label=STAGE_LABELS[stage_id])
    started = time.perf_counter()
    try:
        validate_project_name(project_name, base_dir)
    except ProjectNameError as exc:
        yield from _fail(stage_id, started, "invalid_project_name", str(exc))
        return
    if not json_db.is_file():
        yield from _fail(stage_id, started, "file_not_found", f"File [ {json_db} ] not found")
        return
    yield ev.StageCompleted(command=COMMAND, stage_id=stage_id, duration_ms=_elapsed_ms(started))

    stage_id = "fetch_template"
    yield ev.StageStarted(command=COMMAND, stage_id=stage_id, label=STAGE_LABELS[stage_id])
    started = time.perf_counter()
    try:
        provider, location = split_template(settings.template)
        if fetcher is None:
            fetcher = load_fetcher(provider)()
        yield ev.Debug(
            command=COMMAND,
            message=f"fetch template {settings.template}",
            data={"provider": provider, "location": location, "target": str(project_dir)},
        )
        fetcher.fetch(location, project_dir)
    except (TemplateFetchError, ValueError) as exc:
        yield from _fail(stage_id, started, "template_error", str(exc))
        return
    yield ev.TemplateFetched(command=COMMAND, template=settings.template, path=project_dir)
    yield ev.StageCompleted(command=COMMAND, stage_id=stage_id, duration_ms=_elapsed_ms(started))

    stage_id = "prepare_kv"
    yield ev.StageStarted(command=COMMAND, stage_id=stage_id, label=STAGE_LABELS[stage_id])
    started = time.perf_counter()
    try:
        kv_path, count = convert_json_db(json_db, project_dir, settings.kv_file)
    except KvTransformError as exc:
        yield from _fail(stage_id, started, "transform_error", str(exc))
        return
    except OSError as exc:
        yield from _fail(stage_id, started, "write_failed", f"Failed to write KV database: {exc}")
        return
    yield ev.KvWritten(
        command=COMMAND,
        path=kv_path,
        records=count,
        bytes=kv_path.stat().st_size,
    )
    yield ev.StageCompleted(command=COMMAND, stage_id=stage_id, duration_ms=_elapsed_ms(started))

    stages = deploy_stages(chosen, project_name, settings)
    if not install_deps:
        yield ev.ManualStepsRequired(
            command=COMMAND,
            project_name=project_name,
            commands=manual_commands(project_name, stages),
        )
        yield ev.CommandCompleted(command=COMMAND, ok=True, exit_code=0)
        return

    orchestrator = CommandOrchestrator(stages, cwd=project_dir, spawner=spawner, command=COMMAND)
    yield from orchestrator.run()
    if orchestrator.state == ABORTED:
        yield ev.CommandCompleted(command=COMMAND, ok=False, exit_code=1)
        return

    deployed = orchestrator.result_for("deploy")
    if deployed is not None and deployed.signal:
        yield ev.DeployReady(command=COMMAND, url=deployed.signal)
    else:
        yield ev.Warning(
            command=COMMAND,
            code="deploy_url_missing",
            message="Maybe the JSON Server is deployed but we cannot get its URL",
            hint=settings.dashboard_hint,
        )
    yield ev.CommandCompleted(command=COMMAND, ok=True, exit_code=0)


def _fail(
    stage_id: str,
    started: float,
    error_code: str,
    message: str,
    hint: str | None = None,
) -> Iterable[ev.IgniteEvent]:
    yield ev.StageFailed(
        command=COMMAND,
        stage_id=stage_id,
        duration_ms=_elapsed_ms(started),
        error_code=error_code,
        message=message,
        hint=hint,
    )
    yield ev.CommandCompleted(command=COMMAND, ok=False, exit_code=1)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
