"""Tests for CrontabSession: load path, mutations, busy and stale handling."""

import asyncio

import pytest

from cronmanager.services.errors import (
    BinaryMissingError,
    CommandFailed,
    EntryIndexError,
    OutcomeKind,
    ScheduleValidationError,
)
from cronmanager.services.session import CrontabSession, SessionRegistry

ALICE_TAB = "# alice\n0 2 * * * backup\n"
BOB_TAB = "# bob\n*/5 * * * * ping\n"


@pytest.fixture
def session(host):
    host.crontabs["alice"] = ALICE_TAB
    session = CrontabSession(host, current_user="alice")
    asyncio.run(session.probe())
    host.calls.clear()
    return session


class TestLoad:
    def test_load_own_crontab(self, session, host):
        result = asyncio.run(session.load())

        assert result.kind is OutcomeKind.SUCCESS
        assert [line.text for line in session.document] == ["# alice", "0 2 * * * backup"]
        assert host.calls[0]["argv"] == ["crontab", "-l"]
        assert host.calls[0]["elevate"] is False

    def test_load_other_user_is_elevated(self, session, host):
        host.crontabs["bob"] = BOB_TAB
        session.select_user("bob")

        result = asyncio.run(session.load())

        assert result.kind is OutcomeKind.SUCCESS
        assert host.calls[0]["argv"] == ["crontab", "-u", "bob", "-l"]
        assert host.calls[0]["elevate"] is True

    def test_no_crontab_is_empty_document(self, session):
        session.select_user("carol")

        result = asyncio.run(session.load())

        assert result.kind is OutcomeKind.NO_EXISTING_CRONTAB
        assert len(result.document) == 0

    def test_access_denied_keeps_document(self, session, host):
        asyncio.run(session.load())
        before = session.document
        host.failures["crontab"] = CommandFailed("crontab exited with status 1", problem="access-denied")

        result = asyncio.run(session.load())

        assert result.kind is OutcomeKind.ACCESS_DENIED
        assert "Admin access required" in result.detail
        assert session.document is before

    def test_generic_failure_carries_detail(self, session, host):
        host.failures["crontab"] = CommandFailed("crontab exited with status 2", stderr="weird failure")

        result = asyncio.run(session.load())

        assert result.kind is OutcomeKind.GENERIC
        assert "weird failure" in result.detail

    def test_stale_response_is_discarded(self, session, host):
        host.crontabs["bob"] = BOB_TAB

        async def scenario():
            gate = asyncio.Event()
            host.gates["crontab"] = gate
            alice_load = asyncio.create_task(session.load())
            await asyncio.sleep(0)

            session.select_user("bob")
            del host.gates["crontab"]
            bob_result = await session.load()

            gate.set()
            return bob_result, await alice_load

        bob_result, alice_result = asyncio.run(scenario())

        assert bob_result.kind is OutcomeKind.SUCCESS
        assert alice_result.kind is OutcomeKind.STALE
        assert [line.text for line in session.document] == ["# bob", "*/5 * * * * ping"]


class TestMutations:
    def test_add_entry(self, session, host):
        asyncio.run(session.load())

        outcome = asyncio.run(session.add_entry("*/10 * * * *", "/usr/bin/true"))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == ALICE_TAB + "*/10 * * * * /usr/bin/true\n"
        assert session.document[-1].text == "*/10 * * * * /usr/bin/true"
        assert host.files == {}
        assert session.busy is False

    def test_delete_entry(self, session, host):
        asyncio.run(session.load())

        outcome = asyncio.run(session.delete_entry(0))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == "0 2 * * * backup\n"

    def test_replace_all(self, session, host):
        outcome = asyncio.run(session.replace_all("# fresh\r\n@reboot start\r\n"))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == "# fresh\n@reboot start\n"

    def test_invalid_schedule_never_reaches_host(self, session, host):
        with pytest.raises(ScheduleValidationError):
            asyncio.run(session.add_entry("* * *", "x"))
        assert host.calls == []

    def test_bad_index_never_installs(self, session, host):
        with pytest.raises(EntryIndexError):
            asyncio.run(session.delete_entry(5))

        assert host.commands() == ["crontab"]
        assert host.crontabs["alice"] == ALICE_TAB
        assert session.busy is False

    def test_access_denied_for_other_user(self, session, host):
        host.crontabs["bob"] = BOB_TAB
        session.select_user("bob")
        asyncio.run(session.load())
        host.deny_elevation = True
        before = session.document

        outcome = asyncio.run(session.add_entry("* * * * *", "x"))

        assert outcome.kind is OutcomeKind.ACCESS_DENIED
        assert "bob" in outcome.detail
        assert host.crontabs["bob"] == BOB_TAB
        assert session.document is before

    def test_busy_rejects_second_mutation(self, session, host):
        asyncio.run(session.load())

        async def scenario():
            gate = asyncio.Event()
            host.gates["tee"] = gate
            first = asyncio.create_task(session.add_entry("* * * * *", "first"))
            await asyncio.sleep(0)
            assert session.busy

            second = await session.add_entry("* * * * *", "second")
            gate.set()
            return second, await first

        second, first = asyncio.run(scenario())

        assert second.kind is OutcomeKind.BUSY
        assert first.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == ALICE_TAB + "* * * * * first\n"
        assert "second" not in "".join(line.text for line in session.document)

    def test_add_on_never_loaded_session_keeps_host_content(self, session, host):
        outcome = asyncio.run(session.add_entry("* * * * *", "x"))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == ALICE_TAB + "* * * * * x\n"
        assert host.commands()[:2] == ["crontab", "mktemp"]

    def test_delete_on_never_loaded_session_addresses_host_content(self, session, host):
        outcome = asyncio.run(session.delete_entry(1))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == "# alice\n"

    def test_add_after_user_switch_loads_new_target(self, session, host):
        host.crontabs["bob"] = BOB_TAB
        asyncio.run(session.load())
        session.select_user("bob")

        outcome = asyncio.run(session.add_entry("0 1 * * *", "y"))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["bob"] == BOB_TAB + "0 1 * * * y\n"
        assert host.crontabs["alice"] == ALICE_TAB

    def test_add_after_transient_load_failure_reloads(self, session, host):
        host.failures["crontab"] = CommandFailed("crontab exited with status 2", stderr="transient")
        assert asyncio.run(session.load()).kind is OutcomeKind.GENERIC
        assert not session.loaded

        outcome = asyncio.run(session.add_entry("* * * * *", "x"))

        assert outcome.kind is OutcomeKind.SUCCESS
        assert host.crontabs["alice"] == ALICE_TAB + "* * * * * x\n"

    def test_add_refused_while_content_unknown(self, session, host):
        host.crontabs["bob"] = BOB_TAB
        session.select_user("bob")
        host.deny_elevation = True

        outcome = asyncio.run(session.add_entry("* * * * *", "x"))

        assert outcome.kind is OutcomeKind.ACCESS_DENIED
        assert host.commands() == ["crontab"]
        assert host.crontabs["bob"] == BOB_TAB
        assert session.busy is False

    def test_user_switch_during_install_skips_reload(self, session, host):
        host.crontabs["bob"] = BOB_TAB
        asyncio.run(session.load())

        async def scenario():
            gate = asyncio.Event()
            host.gates["rm"] = gate
            install = asyncio.create_task(session.add_entry("* * * * *", "late"))
            await asyncio.sleep(0)

            session.select_user("bob")
            gate.set()
            return await install

        outcome = asyncio.run(scenario())

        assert outcome.kind is OutcomeKind.SUCCESS
        assert outcome.reload_error is None
        assert host.crontabs["alice"] == ALICE_TAB + "* * * * * late\n"
        assert host.commands()[-1] == "rm"
        assert len(session.document) == 0
        assert not session.loaded


class TestProbe:
    def test_probe_ok(self, session):
        caps = asyncio.run(session.probe())

        assert caps.crontab_available
        assert caps.service_active
        assert caps.warnings == []

    def test_inactive_service_is_warning(self, session, host):
        host.active_services = set()

        caps = asyncio.run(session.probe())

        assert caps.crontab_available
        assert not caps.service_active
        assert len(caps.warnings) == 1

    def test_no_systemctl_skips_service_check(self, session, host):
        host.binaries.discard("systemctl")

        caps = asyncio.run(session.probe())

        assert caps.crontab_available
        assert not caps.systemctl_available
        assert caps.warnings == []

    def test_missing_crontab_blocks_session(self, session, host):
        host.binaries.discard("crontab")

        with pytest.raises(BinaryMissingError):
            asyncio.run(session.probe())

        assert asyncio.run(session.load()).kind is OutcomeKind.BINARY_MISSING
        assert asyncio.run(session.add_entry("* * * * *", "x")).kind is OutcomeKind.BINARY_MISSING
        assert host.commands() == ["which"]


def test_registry_keeps_one_session_per_id(host):
    registry = SessionRegistry(host, "alice")

    assert registry.get("a") is registry.get("a")
    assert registry.get("a") is not registry.get("b")
    first = registry.get("a")
    registry.discard("a")
    assert registry.get("a") is not first


class TestFirstUseCapabilityCheck:
    def test_missing_crontab_is_detected_on_first_mutation(self, host):
        host.crontabs["alice"] = ALICE_TAB
        host.binaries.discard("crontab")
        session = CrontabSession(host, current_user="alice")

        outcome = asyncio.run(session.add_entry("* * * * *", "x"))

        assert outcome.kind is OutcomeKind.BINARY_MISSING
        assert asyncio.run(session.load()).kind is OutcomeKind.BINARY_MISSING
        assert host.commands() == ["which"]
        assert host.crontabs["alice"] == ALICE_TAB

    def test_first_load_checks_capabilities(self, host):
        host.crontabs["alice"] = ALICE_TAB
        session = CrontabSession(host, current_user="alice")

        result = asyncio.run(session.load())

        assert result.kind is OutcomeKind.SUCCESS
        assert session.capabilities is not None
        assert host.commands()[0] == "which"
        assert host.commands()[-1] == "crontab"
