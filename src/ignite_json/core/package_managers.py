from __future__ import annotations

import asyncio
import os
import shutil
from typing import Mapping, Sequence

KNOWN_PACKAGE_MANAGERS = ("npm", "bun", "pnpm", "yarn")
FALLBACK_PACKAGE_MANAGER = "npm"
USER_AGENT_ENV = "npm_config_user_agent"


def detect_invoker(
    environ: Mapping[str, str] | None = None,
    *,
    known: Sequence[str] = KNOWN_PACKAGE_MANAGERS,
    fallback: str = FALLBACK_PACKAGE_MANAGER,
) -> str:
    """Return the package manager that launched us, e.g. ``pnpm`` for ``pnpm/9.1.0 npm/? node/v20``."""
    environ = os.environ if environ is None else environ
    agent = environ.get(USER_AGENT_ENV) or ""
    for manager in known:
        if agent.startswith(manager):
            return manager
    return fallback


async def probe_installed(manager: str) -> bool:
    executable = shutil.which(manager) or manager
    process = await asyncio.create_subprocess_exec(
        executable,
        "--version",
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    return await process.wait() == 0


async def gather_installed(candidates: Sequence[str]) -> list[str]:
    results = await asyncio.gather(
        *(probe_installed(manager) for manager in candidates),
        return_exceptions=True,
    )
    # a probe that raised (missing binary, permissions) counts as not installed
    return [manager for manager, result in zip(candidates, results) if result is True]


def detect_installed(candidates: Sequence[str] = KNOWN_PACKAGE_MANAGERS) -> list[str]:
    if not candidates:
        return []
    return asyncio.run(gather_installed(candidates))
