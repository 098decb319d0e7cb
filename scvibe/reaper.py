from __future__ import annotations

import logging
from collections.abc import Iterable

import psutil

from .settings import ReapScope

_LOGGER = logging.getLogger("scvibe.reaper")

ENGINE_PROCESS_NAMES: frozenset[str] = frozenset(
    {"sclang", "scsynth", "sclang.exe", "scsynth.exe"}
)


def _candidates(scope: ReapScope) -> Iterable[psutil.Process]:
    if scope == "system":
        return psutil.process_iter(["name"])
    return psutil.Process().children(recursive=True)


def reap_engine_processes(
    names: Iterable[str] = ENGINE_PROCESS_NAMES,
    scope: ReapScope = "children",
) -> int:
    """Kill leftover engine processes; returns how many were killed.

    ``children`` only looks at descendants of this process. ``system``
    matches by name across the host and can hit other users' engines.
    """
    wanted = frozenset(names)
    killed = 0
    for process in _candidates(scope):
        try:
            if process.name() not in wanted:
                continue
            _LOGGER.info("Killing leftover engine process %s (pid %s)", process.name(), process.pid)
            process.kill()
            killed += 1
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            continue
        except psutil.AccessDenied:
            _LOGGER.warning("Not allowed to kill engine process pid %s", process.pid)
    return killed
