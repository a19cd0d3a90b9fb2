"""
Shared fixtures: an in-memory host that understands the handful of commands
the crontab manager issues (mktemp, tee, crontab, rm, which, systemctl).
"""

import asyncio
from typing import Dict, List, Optional, Sequence

import pytest

from cronmanager.services.errors import CommandFailed
from cronmanager.services.executor import CommandResult


class FakeHost:
    def __init__(self, current_user: str = "alice") -> None:
        self.current_user = current_user
        self.files: Dict[str, str] = {}
        self.crontabs: Dict[str, str] = {}
        self.binaries = {"crontab", "systemctl", "mktemp", "tee", "rm"}
        self.active_services = {"cron"}
        self.calls: List[dict] = []
        # Befehlsname -> Exception, die beim nächsten Aufruf geworfen wird
        self.failures: Dict[str, BaseException] = {}
        # Befehlsname -> Event, auf das vor der Ausführung gewartet wird
        self.gates: Dict[str, asyncio.Event] = {}
        self.deny_elevation = False
        self._tmp_counter = 0

    def commands(self) -> List[str]:
        return [call["argv"][0] for call in self.calls]

    async def execute(
        self,
        argv: Sequence[str],
        *,
        elevate: bool = False,
        input_data: Optional[str] = None,
        discard_stdout: bool = False,
    ) -> CommandResult:
        argv = list(argv)
        name = argv[0]
        self.calls.append(
            {"argv": argv, "elevate": elevate, "input_data": input_data, "discard_stdout": discard_stdout}
        )

        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()

        if elevate and self.deny_elevation:
            raise CommandFailed(
                f"{name} exited with status 1",
                stderr="sudo: a password is required\n",
                exit_status=1,
                problem="access-denied",
            )
        if name in self.failures:
            raise self.failures.pop(name)

        handler = getattr(self, "_cmd_" + name)
        result = handler(argv[1:], input_data)
        if discard_stdout:
            return CommandResult(stdout="", stderr=result.stderr, exit_status=result.exit_status)
        return result

    def _ok(self, stdout: str = "") -> CommandResult:
        return CommandResult(stdout=stdout, stderr="", exit_status=0)

    def _cmd_which(self, args, _input):
        if args[0] not in self.binaries:
            raise CommandFailed("which exited with status 1", exit_status=1)
        return self._ok(f"/usr/bin/{args[0]}\n")

    def _cmd_systemctl(self, args, _input):
        if args[1] in self.active_services:
            return self._ok("active\n")
        raise CommandFailed("systemctl exited with status 3", stdout="inactive\n", exit_status=3)

    def _cmd_mktemp(self, args, _input):
        self._tmp_counter += 1
        path = "/tmp/" + args[-1].replace("XXXXXX", "%06d" % self._tmp_counter)
        self.files[path] = ""
        return self._ok(path + "\n")

    def _cmd_tee(self, args, input_data):
        self.files[args[0]] = input_data or ""
        return self._ok(input_data or "")

    def _cmd_rm(self, args, _input):
        self.files.pop(args[-1], None)
        return self._ok()

    def _cmd_crontab(self, args, _input):
        user = self.current_user
        if args[:1] == ["-u"]:
            user = args[1]
            args = args[2:]
        if args == ["-l"]:
            if user not in self.crontabs:
                raise CommandFailed(
                    "crontab exited with status 1",
                    stderr=f"no crontab for {user}\n",
                    exit_status=1,
                )
            return self._ok(self.crontabs[user])
        self.crontabs[user] = self.files[args[0]]
        return self._ok()


@pytest.fixture
def host():
    return FakeHost()
