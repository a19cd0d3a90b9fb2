from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from cronmanager.services.errors import BinaryMissingError, CommandFailed, OutcomeKind, classify
from cronmanager.services.executor import CommandExecutor

logger = logging.getLogger(__name__)

DEFAULT_CRON_SERVICES = ("cron", "crond")


@dataclass
class Capabilities:
    crontab_available: bool = False
    systemctl_available: bool = False
    service_active: bool = False
    warnings: List[str] = field(default_factory=list)


async def _binary_exists(executor: CommandExecutor, name: str) -> bool:
    try:
        await executor.execute(["which", name])
    except CommandFailed as e:
        kind = classify(e, probing=True)
        if kind is not OutcomeKind.BINARY_MISSING:
            logger.warning("lookup of %s failed unexpectedly (%s): %s", name, kind.value, e.message)
        return False
    return True


async def probe_capabilities(
    executor: CommandExecutor,
    services: Sequence[str] = DEFAULT_CRON_SERVICES,
) -> Capabilities:
    """
    Prüft vor dem Freischalten von Mutationen:
    - `crontab` muss vorhanden sein (sonst BinaryMissingError, fatal)
    - ein aktiver cron/crond Service ist nur ein Hinweis, kein Fehler
      (Container ohne systemd funktionieren trotzdem)
    """
    caps = Capabilities()

    if not await _binary_exists(executor, "crontab"):
        logger.error("crontab binary missing; ensure cron/cronie is installed")
        raise BinaryMissingError("crontab")
    caps.crontab_available = True

    if not await _binary_exists(executor, "systemctl"):
        logger.info("systemctl not available; skipping cron service checks")
        return caps
    caps.systemctl_available = True

    for service in services:
        try:
            res = await executor.execute(["systemctl", "is-active", service])
        except CommandFailed:
            # inactive/unknown -> nächsten Namen probieren
            continue
        if res.stdout.strip() == "active":
            caps.service_active = True
            break

    if not caps.service_active:
        msg = (
            "No system cron service (%s) is reported as active. "
            "crontab may still work but scheduling might not run." % "/".join(services)
        )
        logger.warning("system cron service not active (%s)", "/".join(services))
        caps.warnings.append(msg)

    return caps
