import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request

from cronmanager.config import Settings, load_settings
from cronmanager.models import (
    CapabilitiesView,
    CrontabLine,
    CrontabReplace,
    CrontabView,
    EntryCreate,
    InstallResult,
    UserSelect,
)
from cronmanager.services.errors import BinaryMissingError, EntryIndexError, OutcomeKind, ScheduleValidationError
from cronmanager.services.executor import CommandExecutor, LocalCommandExecutor
from cronmanager.services.install import InstallOutcome
from cronmanager.services.session import CrontabSession, LoadResult, SessionRegistry

# HTTP-Status je Ergebnis; alles andere als success wird als Fehler gemeldet
STATUS_CODES = {
    OutcomeKind.ACCESS_DENIED: 403,
    OutcomeKind.BUSY: 409,
    OutcomeKind.STALE: 409,
    OutcomeKind.BINARY_MISSING: 503,
    OutcomeKind.PARTIAL_FAILURE: 502,
    OutcomeKind.GENERIC: 502,
}


def _view(session: CrontabSession, result: Optional[LoadResult] = None) -> CrontabView:
    status = result.kind.value if result else OutcomeKind.SUCCESS.value
    return CrontabView(
        user=session.identity.effective_user,
        status=status,
        lines=[
            CrontabLine(index=i, kind=line.kind.value, text=line.text, original_index=line.original_index)
            for i, line in enumerate(session.document)
        ],
        detail=(result.detail or None) if result else None,
    )


def _install_result(session: CrontabSession, outcome: InstallOutcome) -> InstallResult:
    if not outcome.ok:
        raise HTTPException(
            status_code=STATUS_CODES.get(outcome.kind, 500),
            detail={
                "status": outcome.kind.value,
                "stage": outcome.stage.value if outcome.stage else None,
                "detail": outcome.detail,
            },
        )
    return InstallResult(
        status=outcome.kind.value,
        stage=outcome.stage.value if outcome.stage else None,
        reload_error=outcome.reload_error,
        crontab=_view(session),
    )


def create_app(settings: Optional[Settings] = None, executor: Optional[CommandExecutor] = None) -> FastAPI:
    settings = settings or load_settings()
    executor = executor or LocalCommandExecutor(use_sudo=settings.use_sudo)

    app = FastAPI(
        title="Crontab Manager API",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.sessions = SessionRegistry(
        executor,
        settings.current_user,
        temp_template=settings.temp_template,
        cron_services=settings.cron_services,
    )

    def get_session(request: Request, x_session_id: str = Header(default="default")) -> CrontabSession:
        return request.app.state.sessions.get(x_session_id)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/capabilities", response_model=CapabilitiesView)
    async def capabilities(session: CrontabSession = Depends(get_session)):
        try:
            caps = await session.probe()
        except BinaryMissingError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return CapabilitiesView(
            crontab_available=caps.crontab_available,
            systemctl_available=caps.systemctl_available,
            service_active=caps.service_active,
            warnings=caps.warnings,
        )

    @app.get("/crontab", response_model=CrontabView)
    async def get_crontab(session: CrontabSession = Depends(get_session)):
        result = await session.load()
        if result.kind in STATUS_CODES:
            raise HTTPException(
                status_code=STATUS_CODES[result.kind],
                detail={"status": result.kind.value, "detail": result.detail},
            )
        return _view(session, result)

    @app.put("/crontab/user", response_model=CrontabView)
    async def select_user(body: UserSelect, session: CrontabSession = Depends(get_session)):
        session.select_user(body.user)
        return await get_crontab(session)

    @app.post("/crontab/entries", response_model=InstallResult)
    async def add_entry(body: EntryCreate, session: CrontabSession = Depends(get_session)):
        try:
            outcome = await session.add_entry(body.schedule, body.command)
        except ScheduleValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return _install_result(session, outcome)

    @app.delete("/crontab/entries/{index}", response_model=InstallResult)
    async def delete_entry(index: int, session: CrontabSession = Depends(get_session)):
        try:
            outcome = await session.delete_entry(index)
        except EntryIndexError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return _install_result(session, outcome)

    @app.put("/crontab", response_model=InstallResult)
    async def replace_crontab(body: CrontabReplace, session: CrontabSession = Depends(get_session)):
        outcome = await session.replace_all(body.content)
        return _install_result(session, outcome)

    return app


settings = load_settings()

# Log-Level aus CRONMANAGER_LOG_LEVEL
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

app = create_app(settings)
