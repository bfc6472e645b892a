"""Environment-driven settings for the operational state model."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from aocc.shared.models.operations import ModeFlag, ModeState


logger = logging.getLogger(__name__)

_FLAG_ALIASES = {
    "emergency": ModeFlag.EMERGENCY,
    "operations_alert": ModeFlag.OPERATIONS_ALERT,
    "operationsalert": ModeFlag.OPERATIONS_ALERT,
    "alert": ModeFlag.OPERATIONS_ALERT,
    "system_optimized": ModeFlag.SYSTEM_OPTIMIZED,
    "systemoptimized": ModeFlag.SYSTEM_OPTIMIZED,
    "optimized": ModeFlag.SYSTEM_OPTIMIZED,
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name, "1" if default else "0").strip().lower()
    return value not in {"0", "false", "no", "off", ""}


def parse_flags(raw: Optional[str]) -> tuple[ModeFlag, ...]:
    flags: list[ModeFlag] = []
    for token in (raw or "").split(","):
        key = token.strip().lower().replace("-", "_")
        if not key:
            continue
        flag = _FLAG_ALIASES.get(key)
        if flag is None:
            logger.warning("Ignoring unknown mode flag %r", token.strip())
            continue
        if flag not in flags:
            flags.append(flag)
    return tuple(flags)


@dataclass(frozen=True)
class DashboardSettings:
    catalog_path: Optional[str] = None
    catalog_strict: bool = False
    initial_modes: tuple[ModeFlag, ...] = ()
    log_config_path: str = "logging.yaml"

    @classmethod
    def from_env(cls) -> "DashboardSettings":
        return cls(
            catalog_path=os.getenv("AOCC_CATALOG_PATH") or None,
            catalog_strict=_env_bool("AOCC_CATALOG_STRICT", False),
            initial_modes=parse_flags(os.getenv("AOCC_INITIAL_MODES")),
            log_config_path=os.getenv("LOG_CFG", "logging.yaml"),
        )

    def initial_mode_state(self) -> ModeState:
        return ModeState.from_flags(self.initial_modes)
