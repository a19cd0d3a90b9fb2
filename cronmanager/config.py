from __future__ import annotations

import getpass
import os
from dataclasses import dataclass
from typing import Tuple

from cronmanager.services.install import DEFAULT_TEMP_TEMPLATE
from cronmanager.services.probe import DEFAULT_CRON_SERVICES


@dataclass(frozen=True)
class Settings:
    current_user: str
    temp_template: str = DEFAULT_TEMP_TEMPLATE
    cron_services: Tuple[str, ...] = DEFAULT_CRON_SERVICES
    use_sudo: bool = True
    log_level: str = "INFO"


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def load_settings() -> Settings:
    """
    Konfiguration aus der Umgebung (CRONMANAGER_*).

    CRONMANAGER_SUDO=0 schaltet die Eskalation via `sudo -n` ab,
    z.B. wenn der Service bereits als root läuft.
    """
    services = _split_csv(os.getenv("CRONMANAGER_CRON_SERVICES", ",".join(DEFAULT_CRON_SERVICES)))
    return Settings(
        current_user=os.getenv("CRONMANAGER_CURRENT_USER") or getpass.getuser(),
        temp_template=os.getenv("CRONMANAGER_TEMP_TEMPLATE", DEFAULT_TEMP_TEMPLATE),
        cron_services=services or DEFAULT_CRON_SERVICES,
        use_sudo=os.getenv("CRONMANAGER_SUDO", "1") == "1",
        log_level=os.getenv("CRONMANAGER_LOG_LEVEL", "INFO").upper(),
    )
