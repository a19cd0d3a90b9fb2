from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from cronmanager.services.cron_parsing import CrontabDocument, serialize
from cronmanager.services.errors import CommandFailed, OutcomeKind, classify, failure_text
from cronmanager.services.executor import CommandExecutor
from cronmanager.services.permissions import TargetIdentity, crontab_user_args, requires_elevation

logger = logging.getLogger(__name__)

DEFAULT_TEMP_TEMPLATE = "cronmanager-XXXXXX"


class InstallStage(str, Enum):
    IDLE = "idle"
    CREATING_TEMP = "creating_temp"
    WRITING = "writing"
    INSTALLING = "installing"
    CLEANING_UP = "cleaning_up"
    RELOADING = "reloading"
    DONE = "done"
    FAILED = "failed"


@dataclass
class InstallOutcome:
    kind: OutcomeKind
    stage: Optional[InstallStage] = None
    detail: str = ""
    # Install ok, aber das anschließende Neuladen ist fehlgeschlagen
    reload_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


class InstallPipeline:
    """
    Installiert ein Dokument atomar über eine temporäre Datei auf dem Host:

        mktemp -> tee <tmp> (Inhalt via stdin) -> crontab [-u user] <tmp>
        -> rm -f <tmp> -> Reload

    Sobald die Temp-Datei existiert, wird sie auf jedem Pfad wieder entfernt,
    bevor das Ergebnis gemeldet wird. Fehler beim Aufräumen werden nur geloggt.
    """

    def __init__(self, executor: CommandExecutor, temp_template: str = DEFAULT_TEMP_TEMPLATE) -> None:
        self.executor = executor
        self.temp_template = temp_template
        self.stage = InstallStage.IDLE
        self.history: List[InstallStage] = []

    def _enter(self, stage: InstallStage) -> None:
        self.stage = stage
        self.history.append(stage)

    def _failed(self, stage: InstallStage, kind: OutcomeKind, detail: str) -> InstallOutcome:
        self._enter(InstallStage.FAILED)
        logger.warning("crontab install failed at %s (%s): %s", stage.value, kind.value, detail.strip())
        return InstallOutcome(kind=kind, stage=stage, detail=detail)

    async def _cleanup(self, tmp: str, elevate: bool) -> None:
        self._enter(InstallStage.CLEANING_UP)
        try:
            await self.executor.execute(["rm", "-f", tmp], elevate=elevate)
        except Exception as e:
            # Aufräumen darf den eigentlichen Fehler nie verdecken
            logger.warning("failed to remove temp file %s: %s", tmp, failure_text(e, include_stdout=False).strip())

    async def run(
        self,
        document: CrontabDocument,
        target: TargetIdentity,
        reload: Optional[Callable[[], Awaitable[object]]] = None,
    ) -> InstallOutcome:
        elevate = requires_elevation(target)
        content = serialize(document)

        self._enter(InstallStage.CREATING_TEMP)
        try:
            res = await self.executor.execute(["mktemp", "-t", self.temp_template], elevate=elevate)
        except CommandFailed as e:
            kind = classify(e)
            if kind is not OutcomeKind.ACCESS_DENIED:
                kind = OutcomeKind.GENERIC
            return self._failed(InstallStage.CREATING_TEMP, kind, failure_text(e))

        tmp = res.stdout.strip()
        if not tmp:
            return self._failed(InstallStage.CREATING_TEMP, OutcomeKind.GENERIC, "Failed to create temp file on host.")

        failure: Optional[CommandFailed] = None
        failed_stage = InstallStage.WRITING
        try:
            self._enter(InstallStage.WRITING)
            await self.executor.execute(["tee", tmp], elevate=elevate, input_data=content, discard_stdout=True)

            failed_stage = InstallStage.INSTALLING
            self._enter(InstallStage.INSTALLING)
            await self.executor.execute(["crontab", *crontab_user_args(target), tmp], elevate=elevate)
        except CommandFailed as e:
            failure = e
        finally:
            await self._cleanup(tmp, elevate)

        if failure is not None:
            kind = classify(failure, include_stdout=False)
            if kind is not OutcomeKind.ACCESS_DENIED:
                kind = OutcomeKind.PARTIAL_FAILURE
            return self._failed(failed_stage, kind, failure_text(failure, include_stdout=False))

        logger.info("installed updated crontab for %s", target.effective_user)
        outcome = InstallOutcome(kind=OutcomeKind.SUCCESS, stage=InstallStage.DONE)

        if reload is not None:
            self._enter(InstallStage.RELOADING)
            result = await reload()
            kind = getattr(result, "kind", OutcomeKind.SUCCESS)
            # STALE: Ziel wurde inzwischen gewechselt, kein Fehler des Installs
            if kind not in (OutcomeKind.SUCCESS, OutcomeKind.NO_EXISTING_CRONTAB, OutcomeKind.STALE):
                outcome.reload_error = getattr(result, "detail", "") or kind.value
                logger.warning("reload after install failed for %s: %s", target.effective_user, outcome.reload_error)

        self._enter(InstallStage.DONE)
        return outcome
