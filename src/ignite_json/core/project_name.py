from __future__ import annotations

import re
from pathlib import Path

PROJECT_NAME_PATTERN = re.compile(r"^(?!-)[a-zA-Z0-9-]+(?<!-)$")

INVALID_NAME_MESSAGE = (
    "Project Name must contain only letters, numbers, and dashes, "
    "and cannot start or end with a dash."
)


class ProjectNameError(ValueError):
    pass


def already_exists_message(name: str) -> str:
    return (
        "Project name already exists. "
        f"Choose a different name or delete the [ {name} ] folder."
    )


def project_name_problem(name: str, base_dir: Path | None = None) -> str | None:
    if not PROJECT_NAME_PATTERN.match(name):
        return INVALID_NAME_MESSAGE
    base_dir = base_dir or Path.cwd()
    target = base_dir / name
    if target.exists() or target.is_symlink():
        return already_exists_message(name)
    return None


def validate_project_name(name: str, base_dir: Path | None = None) -> str:
    problem = project_name_problem(name, base_dir)
    if problem:
        raise ProjectNameError(problem)
    return name
