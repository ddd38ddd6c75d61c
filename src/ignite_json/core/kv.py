"""Conversion of a flat JSON database into Workers KV bulk records."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping


class KvTransformError(RuntimeError):
    pass


@dataclass(frozen=True)
class KVRecord:
    key: str
    value: str


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except ValueError as exc:
        raise KvTransformError(f"Value cannot be stored as JSON: {exc}") from exc


def _reject_constant(name: str) -> Any:
    raise KvTransformError(f"{name} is not valid JSON.")


def json_to_kv(data: Mapping[str, Any]) -> list[KVRecord]:
    """Map every top-level entry to a record whose value is JSON-encoded.

    Scalars are encoded too, so ``"x"`` becomes ``'"x"'`` and ``1`` becomes ``'1'``.
    NaN and infinities are rejected with ``KvTransformError``.
    """
    return [KVRecord(key=key, value=_dumps(value)) for key, value in data.items()]


def load_json_db(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise KvTransformError(f"Cannot read JSON database [ {path} ]: {exc}") from exc
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, KvTransformError) as exc:
        raise KvTransformError(f"Invalid JSON in [ {path} ]: {exc}") from exc
    if not isinstance(data, dict):
        raise KvTransformError(
            f"JSON database [ {path} ] must contain an object at the top level, "
            f"got {type(data).__name__}."
        )
    return data


def write_kv(records: list[KVRecord], project_dir: Path, filename: str = "kv.json") -> Path:
    destination = project_dir / filename
    payload = _dumps([asdict(record) for record in records])
    destination.write_text(payload, encoding="utf-8")
    return destination


def convert_json_db(json_db: Path, project_dir: Path, filename: str = "kv.json") -> tuple[Path, int]:
    records = json_to_kv(load_json_db(json_db))
    return write_kv(records, project_dir, filename), len(records)
