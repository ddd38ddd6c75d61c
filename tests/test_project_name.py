from __future__ import annotations

from pathlib import Path

import pytest

from ignite_json.core.project_name import (
    ProjectNameError,
    project_name_problem,
    validate_project_name,
)


@pytest.mark.parametrize("name", ["my-app", "app123", "A", "My-Cool-App-2"])
def test_accepts_valid_names(tmp_path: Path, name: str) -> None:
    assert validate_project_name(name, tmp_path) == name


@pytest.mark.parametrize("name", ["-app", "app-", "app_x", "my app", "", "app.js", "-"])
def test_rejects_invalid_names(tmp_path: Path, name: str) -> None:
    with pytest.raises(ProjectNameError, match="letters, numbers, and dashes"):
        validate_project_name(name, tmp_path)


def test_rejects_existing_directory(tmp_path: Path) -> None:
    (tmp_path / "my-app").mkdir()

    with pytest.raises(ProjectNameError, match="already exists"):
        validate_project_name("my-app", tmp_path)


def test_rejects_existing_file(tmp_path: Path) -> None:
    (tmp_path / "my-app").write_text("", encoding="utf-8")

    problem = project_name_problem("my-app", tmp_path)

    assert problem is not None
    assert "[ my-app ]" in problem


def test_validation_does_not_touch_filesystem(tmp_path: Path) -> None:
    validate_project_name("fresh", tmp_path)
    assert not (tmp_path / "fresh").exists()
