from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Iterable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ignite_json.core.stages import Stage  # noqa: E402


@pytest.fixture
def json_db(tmp_path: Path) -> Path:
    path = tmp_path / "db.json"
    path.write_text(
        json.dumps(
            {
                "posts": [{"id": 1, "title": "json-server"}],
                "profile": {"name": "typicode"},
                "title": "ignite",
                "count": 2,
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    template = tmp_path / "template"
    (template / "src").mkdir(parents=True)
    (template / "package.json").write_text('{"name": "ignite-json"}\n', encoding="utf-8")
    (template / "src" / "index.ts").write_text("export default {};\n", encoding="utf-8")
    return template


class FakeSpawner:
    """Replays scripted output per stage name and records what was spawned."""

    def __init__(self, scripts: dict[str, Iterable[tuple[str, str]]] | None = None):
        self.scripts = {name: list(items) for name, items in (scripts or {}).items()}
        self.spawned: list[Stage] = []
        self.consumed: dict[str, int] = {}

    def __call__(self, stage: Stage, cwd: Path):
        self.spawned.append(stage)
        items = self.scripts.get(stage.name, [("exit", "0")])
        if items and items[0][0] == "oserror":
            raise FileNotFoundError(items[0][1])
        return self._iterate(stage.name, items)

    def _iterate(self, name: str, items: list[tuple[str, str]]):
        self.consumed[name] = 0
        for item in items:
            self.consumed[name] += 1
            yield item

    @property
    def spawned_names(self) -> list[str]:
        return [stage.name for stage in self.spawned]


@pytest.fixture
def fake_spawner() -> type[FakeSpawner]:
    return FakeSpawner
