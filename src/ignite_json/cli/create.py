from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from ignite_json import __version__
from ignite_json.cli.renderers import (
    CreatePlainRenderer,
    CreateRichRenderer,
    JsonLinesRenderer,
    run_events,
)
from ignite_json.config.load import ConfigError, load_settings
from ignite_json.config.model import Settings
from ignite_json.core.create import create_events
from ignite_json.core.package_managers import detect_installed, detect_invoker
from ignite_json.core.project_name import project_name_problem

console = Console()

NO_PACKAGE_MANAGER = "There is no package managers found!, You must install one"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"create-ignite-json v{__version__}")
        raise typer.Exit()


def create(
    project_name: str | None = typer.Option(
        None,
        "--project-name",
        "-n",
        help="Project name [ used for folder name and KV database name ].",
    ),
    json_db: Path | None = typer.Option(
        None,
        "--json-db",
        "-j",
        help="JSON database file path.",
    ),
    install_deps: str | None = typer.Option(
        None,
        "--install-deps",
        "-i",
        metavar="yes|no",
        help="Install dependencies and deploy automatically.",
    ),
    package_manager: str | None = typer.Option(
        None,
        "--package-manager",
        "--pm",
        help="Package manager to use (implies --install-deps yes).",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to ignite-json.yaml (defaults to ./ignite-json.yaml when present).",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit one JSON event per line.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Show spawned commands, exit codes and stack traces.",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Scaffold an ignite-json project from a JSON database and deploy it to Cloudflare Workers."""
    base_dir = Path.cwd()
    prompt_console = Console(stderr=True) if json_output else console

    try:
        settings = load_settings(base_dir, config)
    except ConfigError as exc:
        _abort(str(exc))

    if install_deps is not None:
        install_deps = install_deps.strip().lower()
        if install_deps not in {"yes", "no"}:
            _abort(f"Invalid value for --install-deps: {install_deps} (choose from yes, no)")
    if package_manager is not None and install_deps is None:
        install_deps = "yes"

    if project_name is not None:
        problem = project_name_problem(project_name, base_dir)
        if problem:
            _abort(problem)
        _echo_flag(prompt_console, "Project Name", project_name)
    else:
        project_name = _ask_project_name(prompt_console, settings, base_dir)

    if json_db is not None:
        if not (base_dir / json_db).is_file():
            _abort(f"File [ {json_db} ] not found")
        _echo_flag(prompt_console, "JSON database file path", str(json_db))
    else:
        json_db = _ask_json_db(prompt_console, settings, base_dir)

    if install_deps is not None:
        install = install_deps == "yes"
        _echo_flag(prompt_console, "Install dependencies automatically", "Yes" if install else "No")
    else:
        install = Confirm.ask(
            "Install dependencies automatically?", default=True, console=prompt_console
        )

    installed: list[str] | None = None
    if install:
        installed = detect_installed(settings.package_managers)
        if not installed:
            _abort(NO_PACKAGE_MANAGER)
        if package_manager is None:
            package_manager = _ask_package_manager(prompt_console, settings, installed)
        elif package_manager not in installed:
            _abort(
                f"Package manager [ {package_manager} ] is not installed "
                f"(choose from {', '.join(installed)})"
            )
        else:
            _echo_flag(prompt_console, "Package Manager", package_manager)

    events = create_events(
        project_name=project_name,
        json_db=json_db,
        install_deps=install,
        package_manager=package_manager,
        installed=installed,
        settings=settings,
        base_dir=base_dir,
    )
    if json_output:
        renderer = JsonLinesRenderer(console, debug=debug)
    elif console.is_terminal:
        renderer = CreateRichRenderer(console, debug=debug)
    else:
        renderer = CreatePlainRenderer(console, debug=debug)

    try:
        exit_code = run_events(events, renderer)
    except Exception as exc:  # noqa: BLE001
        if debug:
            raise
        console.print(f"[red]Unexpected error:[/red] {exc}")
        raise typer.Exit(code=1)
    raise typer.Exit(code=exit_code)


def _abort(message: str) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _echo_flag(target: Console, label: str, value: str) -> None:
    target.print(f"[green]✔[/green] [cyan]{label}:[/cyan] [bright_green]{escape(value)}[/bright_green]")


def _ask_project_name(target: Console, settings: Settings, base_dir: Path) -> str:
    while True:
        name = Prompt.ask("Project Name", default=settings.default_project_name, console=target)
        problem = project_name_problem(name, base_dir)
        if problem is None:
            return name
        target.print(f"[red]{problem}[/red]")


def _ask_json_db(target: Console, settings: Settings, base_dir: Path) -> Path:
    while True:
        answer = Prompt.ask("JSON database file path", default=settings.default_json_db, console=target)
        path = Path(answer)
        if (base_dir / path).is_file():
            return path
        target.print(f"[red]File [ {answer} ] not found[/red]")


def _ask_package_manager(target: Console, settings: Settings, installed: list[str]) -> str:
    invoker = detect_invoker(
        known=settings.package_managers,
        fallback=settings.fallback_package_manager,
    )
    default = invoker if invoker in installed else installed[0]
    return Prompt.ask(
        "Choose package manager",
        choices=installed,
        default=default,
        console=target,
    )
