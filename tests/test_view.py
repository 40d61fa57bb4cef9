import asyncio
import logging
import pytest

import dyndnsd.view
from dyndnsd.view import Orchestrator, UpdateRequest, UpdateStatus, UpdateOutcome

ALICE_STDIN = (
    "server ::1\n"
    "update delete example.org. IN A\n"
    "update add example.org. 60 IN A 2.3.4.5\n"
    "update delete example.org. IN AAAA\n"
    "update add example.org. 60 IN AAAA 2:3:4:1::5\n"
    "send\n"
    "update delete test.example.org. IN A\n"
    "update add test.example.org. 300 IN A 2.3.4.5\n"
    "update delete test.example.org. IN AAAA\n"
    "update add test.example.org. 300 IN AAAA 2:3:4:1::6\n"
    "send\n"
    "quit\n"
)


@pytest.fixture
def spawns(monkeypatch):
    """Record every update program run started by the orchestrator."""
    calls = []
    original = dyndnsd.view.run_update_program

    async def recording_run(program, updates, timeout):
        calls.append(list(updates))
        return await original(program, updates, timeout)

    monkeypatch.setattr(dyndnsd.view, 'run_update_program', recording_run)
    return calls


@pytest.fixture
def missing_program(shell_program, tmp_path):
    return shell_program('') | {'bin': str(tmp_path / 'does-not-exist')}


def request(**params):
    params.setdefault('user', 'alice')
    params.setdefault('password', '123456')
    return UpdateRequest(**params)


class TestOrchestrator:
    @pytest.mark.asyncio
    async def test_end_to_end(self, config, stdin_file, spawns):
        orchestrator = Orchestrator(config, timeout=10)
        outcome = await orchestrator.handle(request(ipv4='2.3.4.5', ipv6='2:3:4:5:6:7:8:9'))
        assert outcome == UpdateOutcome(status=UpdateStatus.SUCCESS, detail='ok')
        assert stdin_file.read_text() == ALICE_STDIN
        assert len(spawns) == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_run_in_parallel(self, make_config, shell_program, spawns):
        config = make_config(update_program=shell_program('cat >/dev/null; exec sleep 1'))
        orchestrator = Orchestrator(config, timeout=10)
        loop = asyncio.get_running_loop()
        started = loop.time()
        outcomes = await asyncio.gather(*[
            orchestrator.handle(request(ipv4=f'2.3.4.{i}')) for i in range(4)
        ])
        assert [o.status for o in outcomes] == [UpdateStatus.SUCCESS] * 4
        # Four one-second programs, each request with its own process
        assert loop.time() - started < 3
        assert sorted(str(updates[0].ipv4) for updates in spawns) == [f'2.3.4.{i}' for i in range(4)]

    @pytest.mark.asyncio
    async def test_lan_prefix(self, config, stdin_file):
        outcome = await Orchestrator(config, timeout=10).handle(request(ipv6lanprefix='2001:db8:1200::/56'))
        assert outcome.status == UpdateStatus.SUCCESS
        assert "update add example.org. 60 IN AAAA 2001:db8:1200:1::5\n" in stdin_file.read_text()

    @pytest.mark.asyncio
    async def test_empty_parameters_are_absent(self, config, stdin_file):
        outcome = await Orchestrator(config, timeout=10).handle(request(ipv4='2.3.4.5', ipv6='', ipv6lanprefix=' '))
        assert outcome.status == UpdateStatus.SUCCESS
        assert 'AAAA' not in stdin_file.read_text()

    @pytest.mark.asyncio
    @pytest.mark.parametrize('params', [
        {},
        {'ipv4': ''},
        {'ipv4': '2.3.4'},
        {'ipv4': '2:3:4:5:6:7:8:9'},
        {'ipv6': '2.3.4.5'},
        {'ipv6': 'zzzz::1'},
        {'ipv4': '2.3.4.5', 'ipv6': 'invalid'},
        {'ipv6lanprefix': '2001:db8::'},
    ])
    async def test_bad_request(self, config, spawns, params):
        outcome = await Orchestrator(config, timeout=10).handle(request(**params))
        assert outcome.status == UpdateStatus.BAD_REQUEST
        assert spawns == []

    @pytest.mark.asyncio
    async def test_bad_request_before_authentication(self, config, spawns):
        outcome = await Orchestrator(config, timeout=10).handle(request(password='wrong'))
        assert outcome.status == UpdateStatus.BAD_REQUEST

    @pytest.mark.asyncio
    @pytest.mark.parametrize('user,password', [
        ('alice', 'wrong'),
        ('mallory', '123456'),
        ('', ''),
    ])
    async def test_unauthorized(self, make_config, missing_program, spawns, user, password):
        config = make_config(update_program=missing_program)
        outcome = await Orchestrator(config, timeout=10).handle(request(user=user, password=password, ipv4='2.3.4.5'))
        assert outcome == UpdateOutcome(status=UpdateStatus.UNAUTHORIZED, detail='Not authorized')
        assert spawns == []

    @pytest.mark.asyncio
    async def test_user_without_domains(self, make_config, missing_program, spawns):
        config = make_config(update_program=missing_program)
        outcome = await Orchestrator(config, timeout=10).handle(request(user='bob', password='hunter2', ipv4='2.3.4.5'))
        assert outcome.status == UpdateStatus.SUCCESS
        assert spawns == []

    @pytest.mark.asyncio
    async def test_missing_program(self, make_config, missing_program):
        config = make_config(update_program=missing_program)
        outcome = await Orchestrator(config, timeout=10).handle(request(ipv4='2.3.4.5'))
        assert outcome == UpdateOutcome(status=UpdateStatus.UPDATE_FAILED, detail='ERROR')

    @pytest.mark.asyncio
    async def test_program_fails(self, make_config, shell_program, caplog):
        config = make_config(update_program=shell_program('cat >/dev/null; echo "NOTAUTH" >&2; exit 1'))
        outcome = await Orchestrator(config, timeout=10).handle(request(ipv4='2.3.4.5'))
        assert outcome.status == UpdateStatus.UPDATE_FAILED
        assert 'NOTAUTH' not in outcome.detail
        assert 'NOTAUTH' in caplog.text
        assert 'NonZeroExit' in caplog.text

    @pytest.mark.asyncio
    async def test_password_is_not_logged(self, config, caplog):
        caplog.set_level(logging.DEBUG)
        await Orchestrator(config, timeout=10).handle(request(password='s3cr3t-passw0rd', ipv4='2.3.4.5'))
        assert 's3cr3t-passw0rd' not in caplog.text

    def test_request_repr_hides_password(self):
        assert '123456' not in repr(request())
