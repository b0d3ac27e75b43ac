"""Host environment probing for plan prerequisites."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Protocol

import psutil

from waypoint.config import EnvironmentConfig
from waypoint.core.errors import PrerequisiteUnmet
from waypoint.planner.models import Prerequisites
from waypoint.utils.logging import get_logger

log = get_logger(__name__)


class EnvironmentProbe(Protocol):
    def on_unmetered_network(self) -> bool: ...

    def is_charging(self) -> bool: ...

    def free_space_mb(self) -> int: ...


class HostEnvironment:
    """Answers prerequisite questions about the machine the engine runs on."""

    def __init__(self, config: EnvironmentConfig, data_dir: Path) -> None:
        self._config = config
        self._data_dir = data_dir

    def on_unmetered_network(self) -> bool:
        metered = set(self._config.metered_interfaces)
        for name, stats in psutil.net_if_stats().items():
            if not stats.isup or name.startswith("lo"):
                continue
            if name not in metered:
                return True
        return False

    def is_charging(self) -> bool:
        battery = psutil.sensors_battery()
        if battery is None:
            # No battery: running on mains power
            return True
        return bool(battery.power_plugged)

    def free_space_mb(self) -> int:
        path = self._data_dir
        while not path.exists() and path != path.parent:
            path = path.parent
        return shutil.disk_usage(path).free // (1024 * 1024)


def unmet_prerequisites(prereqs: Prerequisites | None, probe: EnvironmentProbe) -> list[str]:
    """Names of the prerequisites the environment does not satisfy.

    A check that raises is logged and treated as satisfied.
    """
    if prereqs is None or prereqs.is_empty:
        return []

    checks: list[tuple[str, Callable[[], bool]]] = []
    if prereqs.wifi:
        checks.append(("wifi", probe.on_unmetered_network))
    if prereqs.charging:
        checks.append(("charging", probe.is_charging))
    if prereqs.min_free_space_mb > 0:
        checks.append((
            "min_free_space_mb",
            lambda: probe.free_space_mb() >= prereqs.min_free_space_mb,
        ))

    unmet: list[str] = []
    for name, check in checks:
        try:
            if not check():
                unmet.append(name)
        except Exception:
            log.exception("prerequisite_check_error", prerequisite=name)
    return unmet


def check_prerequisites(prereqs: Prerequisites | None, probe: EnvironmentProbe) -> None:
    """Raise PrerequisiteUnmet naming every unsatisfied prerequisite."""
    unmet = unmet_prerequisites(prereqs, probe)
    if unmet:
        raise PrerequisiteUnmet(unmet)
