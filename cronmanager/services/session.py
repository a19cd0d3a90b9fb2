from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from cronmanager.services import crontab_edit
from cronmanager.services.cron_parsing import EMPTY_DOCUMENT, CrontabDocument, parse
from cronmanager.services.errors import BinaryMissingError, CommandFailed, OutcomeKind, classify, failure_text
from cronmanager.services.executor import CommandExecutor
from cronmanager.services.install import DEFAULT_TEMP_TEMPLATE, InstallOutcome, InstallPipeline
from cronmanager.services.permissions import TargetIdentity, crontab_user_args, requires_elevation
from cronmanager.services.probe import DEFAULT_CRON_SERVICES, Capabilities, probe_capabilities

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    kind: OutcomeKind
    document: CrontabDocument = EMPTY_DOCUMENT
    detail: str = ""


class CrontabSession:
    """
    Zustand einer Client-Session: Ziel-Account, aktuelles Dokument,
    Busy-Flag für Installs und Generationszähler für Loads.

    Pro Session läuft höchstens ein Install gleichzeitig; weitere
    Mutationen werden mit BUSY abgewiesen statt verschachtelt. Mutiert wird
    nur ein Dokument, das für das aktuelle Ziel vom Host geladen wurde.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        current_user: str,
        temp_template: str = DEFAULT_TEMP_TEMPLATE,
        cron_services: Sequence[str] = DEFAULT_CRON_SERVICES,
    ) -> None:
        self.executor = executor
        self.identity = TargetIdentity(current_user=current_user)
        self.document: CrontabDocument = EMPTY_DOCUMENT
        self.temp_template = temp_template
        self.cron_services = tuple(cron_services)
        self.capabilities: Optional[Capabilities] = None
        self.binary_missing = False
        self.busy = False
        self._generation = 0
        # Generation, für die `document` zuletzt vom Host gelesen wurde
        self._loaded_generation: Optional[int] = None

    @property
    def loaded(self) -> bool:
        return self._loaded_generation == self._generation

    # --- Ziel-Account ---------------------------------------------------

    def select_user(self, user: Optional[str]) -> None:
        """Wechselt den Ziel-Account; laufende Loads für das alte Ziel werden verworfen."""
        self.identity = TargetIdentity(current_user=self.identity.current_user, selected_user=user or None)
        self.document = EMPTY_DOCUMENT
        self._generation += 1

    # --- Capability-Probe -----------------------------------------------

    async def probe(self) -> Capabilities:
        try:
            caps = await probe_capabilities(self.executor, self.cron_services)
        except BinaryMissingError:
            self.binary_missing = True
            self.capabilities = Capabilities(crontab_available=False)
            raise
        self.binary_missing = False
        self.capabilities = caps
        return caps

    async def _ensure_probed(self) -> bool:
        """Probe beim ersten Load/Mutation nachholen; False wenn `crontab` fehlt."""
        if self.capabilities is None:
            try:
                await self.probe()
            except BinaryMissingError as e:
                # wird als BINARY_MISSING-Ergebnis an den Aufrufer gemeldet
                logger.info("crontab operations disabled for this session: %s", e)
        return not self.binary_missing

    # --- Lesen ----------------------------------------------------------

    async def load(self) -> LoadResult:
        if not await self._ensure_probed():
            return LoadResult(kind=OutcomeKind.BINARY_MISSING, document=self.document, detail="crontab command not found")

        generation = self._generation
        target = self.identity
        argv = ["crontab", *crontab_user_args(target), "-l"]

        try:
            res = await self.executor.execute(argv, elevate=requires_elevation(target))
        except CommandFailed as e:
            kind = classify(e)
            if generation != self._generation:
                logger.info("discarding stale load failure for %s", target.effective_user)
                return LoadResult(kind=OutcomeKind.STALE, document=self.document)

            if kind is OutcomeKind.NO_EXISTING_CRONTAB:
                # kein crontab ist ok -> leeres Dokument
                logger.info("no crontab for %s", target.effective_user)
                self.document = EMPTY_DOCUMENT
                self._loaded_generation = generation
                return LoadResult(kind=kind, document=self.document)

            # Host-Stand unbekannt -> vor der nächsten Mutation neu laden
            self._loaded_generation = None
            detail = failure_text(e)
            if kind is OutcomeKind.ACCESS_DENIED:
                logger.warning("access denied loading crontab for %s", target.effective_user)
                detail = f"Admin access required to read crontab for {target.effective_user}."
            else:
                logger.warning("crontab -l failed for %s: %s", target.effective_user, detail.strip())
            return LoadResult(kind=kind, document=self.document, detail=detail)

        if generation != self._generation:
            logger.info("discarding stale crontab for %s", target.effective_user)
            return LoadResult(kind=OutcomeKind.STALE, document=self.document)

        self.document = parse(res.stdout)
        self._loaded_generation = generation
        logger.info("loaded crontab for %s (%s lines)", target.effective_user, len(self.document))
        return LoadResult(kind=OutcomeKind.SUCCESS, document=self.document)

    # --- Mutationen -----------------------------------------------------

    async def _prepare(self, needs_document: bool) -> Optional[InstallOutcome]:
        if not await self._ensure_probed():
            return InstallOutcome(kind=OutcomeKind.BINARY_MISSING, detail="crontab command not found")
        if not needs_document or self.loaded:
            return None

        result = await self.load()
        if result.kind in (OutcomeKind.SUCCESS, OutcomeKind.NO_EXISTING_CRONTAB):
            return None
        logger.warning("refusing to modify crontab for %s: current content unknown", self.identity.effective_user)
        return InstallOutcome(kind=result.kind, detail=result.detail or "crontab could not be loaded")

    async def _install(self, new_document: CrontabDocument) -> InstallOutcome:
        target = self.identity
        generation = self._generation
        pipeline = InstallPipeline(self.executor, temp_template=self.temp_template)

        async def _reload() -> LoadResult:
            if generation != self._generation:
                # Ziel wurde während des Installs gewechselt
                return LoadResult(kind=OutcomeKind.STALE, document=self.document)
            # Inhalt ist installiert; Dokument vor dem Reload nachziehen
            self.document = new_document
            self._loaded_generation = generation
            return await self.load()

        outcome = await pipeline.run(new_document, target, reload=_reload)
        if outcome.kind is OutcomeKind.ACCESS_DENIED:
            outcome.detail = f"Admin access required to write crontab for {target.effective_user}."
        return outcome

    def _busy_outcome(self) -> InstallOutcome:
        return InstallOutcome(kind=OutcomeKind.BUSY, detail="another crontab install is in progress")

    async def add_entry(self, schedule: str, command: str) -> InstallOutcome:
        if self.busy:
            return self._busy_outcome()
        crontab_edit.validate_entry(schedule, command)

        self.busy = True
        try:
            rejected = await self._prepare(needs_document=True)
            if rejected is not None:
                return rejected
            new_document = crontab_edit.append_entry(self.document, schedule, command)
            logger.info("adding entry for %s: %s %s", self.identity.effective_user, schedule.strip(), command.strip())
            return await self._install(new_document)
        finally:
            self.busy = False

    async def delete_entry(self, index: int) -> InstallOutcome:
        if self.busy:
            return self._busy_outcome()

        self.busy = True
        try:
            rejected = await self._prepare(needs_document=True)
            if rejected is not None:
                return rejected
            new_document = crontab_edit.remove_entry_at(self.document, index)
            logger.info("removing line %s for %s", index, self.identity.effective_user)
            return await self._install(new_document)
        finally:
            self.busy = False

    async def replace_all(self, content: str) -> InstallOutcome:
        if self.busy:
            return self._busy_outcome()

        self.busy = True
        try:
            rejected = await self._prepare(needs_document=False)
            if rejected is not None:
                return rejected
            return await self._install(crontab_edit.replace_content(content))
        finally:
            self.busy = False


class SessionRegistry:
    """Hält eine CrontabSession pro Client (Session-ID aus dem Request)."""

    def __init__(self, executor: CommandExecutor, current_user: str, **session_kwargs) -> None:
        self.executor = executor
        self.current_user = current_user
        self.session_kwargs = session_kwargs
        self._sessions: Dict[str, CrontabSession] = {}

    def get(self, session_id: str) -> CrontabSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = CrontabSession(self.executor, self.current_user, **self.session_kwargs)
            self._sessions[session_id] = session
        return session

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
