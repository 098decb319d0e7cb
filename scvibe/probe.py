from __future__ import annotations

import logging
import platform
import shutil
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict

from .errors import EngineNotFoundError

_LOGGER = logging.getLogger("scvibe.probe")

INSTALL_URL = "https://supercollider.github.io/downloads"

ProbeLocation = Literal["override", "path", "app_bundle", "missing"]


class ProbeReport(BaseModel):
    name: str
    location: ProbeLocation
    path: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def found(self) -> bool:
        return self.path is not None


def _app_bundle_candidates(name: str) -> list[Path]:
    if platform.system() != "Darwin":
        return []
    bundle = Path("Contents") / ("Resources" if name == "scsynth" else "MacOS") / name
    return [
        Path("/Applications/SuperCollider/SuperCollider.app") / bundle,
        Path("/Applications/SuperCollider.app") / bundle,
    ]


def locate(name: str, override: str | None = None) -> ProbeReport:
    if override:
        candidate = Path(override).expanduser()
        if candidate.is_file():
            return ProbeReport(name=name, location="override", path=str(candidate))
    found = shutil.which(name)
    if found:
        return ProbeReport(name=name, location="path", path=found)
    for candidate in _app_bundle_candidates(name):
        if candidate.is_file():
            return ProbeReport(name=name, location="app_bundle", path=str(candidate))
    return ProbeReport(name=name, location="missing")


def find_binary(name: str, override: str | None = None) -> str:
    report = locate(name, override)
    if report.path is None:
        raise EngineNotFoundError(f"{name} not found; install SuperCollider from {INSTALL_URL}")
    return report.path


def probe_engine(name: str, override: str | None = None) -> ProbeReport:
    """Log where the engine binary is, for operator guidance only."""
    report = locate(name, override)
    match report.location:
        case "override":
            _LOGGER.info("%s configured at %s", name, report.path)
        case "path":
            _LOGGER.info("%s found in PATH (%s)", name, report.path)
        case "app_bundle":
            _LOGGER.warning(
                "%s found at %s but not in PATH; consider adding it to PATH",
                name,
                report.path,
            )
        case _:
            _LOGGER.warning(
                "%s not found in standard locations; install SuperCollider from %s",
                name,
                INSTALL_URL,
            )
    return report
