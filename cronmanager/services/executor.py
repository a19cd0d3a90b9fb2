from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

from cronmanager.services.errors import CommandFailed

logger = logging.getLogger(__name__)

# sudo -n: niemals nach einem Passwort fragen, sonst hängt der Request
SUDO_PREFIX = ("sudo", "-n")


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_status: int


class CommandExecutor(Protocol):
    """
    Schnittstelle zum Host: "führe diesen Befehl aus, liefere stdout/stderr/exit".

    Bei exit != 0 wird CommandFailed geworfen (mit denselben Feldern).
    `input_data` wird als Daten über stdin übertragen, nie als Teil von argv;
    mit `discard_stdout` landet die Ausgabe nicht im Ergebnis.
    """

    async def execute(
        self,
        argv: Sequence[str],
        *,
        elevate: bool = False,
        input_data: Optional[str] = None,
        discard_stdout: bool = False,
    ) -> CommandResult:
        ...


async def _run_command(
    argv: Sequence[str],
    input_data: Optional[str] = None,
    discard_stdout: bool = False,
) -> Tuple[int, str, str]:
    """
    Startet den Prozess asynchron, schreibt `input_data` (falls gesetzt) nach
    stdin und wartet auf das Ende. Ergebnis ist (returncode, stdout, stderr);
    ein Exit-Code != 0 ist hier noch kein Fehler, das entscheidet der Aufrufer.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL if discard_stdout else asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.warning("command not found: %s", argv[0])
        return 127, "", f"command not found: {argv[0]}"

    out, err = await proc.communicate(input_data.encode("utf-8") if input_data is not None else None)
    return (
        proc.returncode if proc.returncode is not None else -1,
        (out or b"").decode("utf-8", errors="replace"),
        err.decode("utf-8", errors="replace"),
    )


def _problem_for(rc: int, stderr: str, elevated: bool) -> Optional[str]:
    if rc == 127:
        return "not-found"
    if elevated and "a password is required" in stderr.lower():
        return "access-denied"
    return None


class LocalCommandExecutor:
    """
    Führt Befehle auf dem lokalen Host aus.

    Eskalation via `sudo -n` (wie beim Root-Crontab-Lesen); mit
    use_sudo=False laufen auch privilegierte Befehle direkt, z.B. wenn
    der Service selbst als root läuft.
    """

    def __init__(self, use_sudo: bool = True) -> None:
        self.use_sudo = use_sudo

    async def execute(
        self,
        argv: Sequence[str],
        *,
        elevate: bool = False,
        input_data: Optional[str] = None,
        discard_stdout: bool = False,
    ) -> CommandResult:
        elevated = elevate and self.use_sudo
        cmd = [*SUDO_PREFIX, *argv] if elevated else list(argv)

        rc, out, err = await _run_command(cmd, input_data=input_data, discard_stdout=discard_stdout)
        if rc != 0:
            logger.debug("command failed (rc=%s): %s: %s", rc, cmd, err.strip())
            raise CommandFailed(
                f"{argv[0]} exited with status {rc}",
                stdout=out,
                stderr=err,
                exit_status=rc,
                problem=_problem_for(rc, err, elevated),
            )
        return CommandResult(stdout=out, stderr=err, exit_status=rc)
