"""Integration tests for the coprocess session against the fake worker."""

import pytest

from apexcalc.protocol.messages import CLOSE_COMMAND
from apexcalc.session.manager import CoprocessSession, SessionState
from tests.fixtures.sessions import create_session, fd_is_open, is_reaped


@pytest.mark.integration
class TestSessionLifecycle:
    """Test lazy spawn, reuse and teardown."""

    def test_starts_inactive(self, session):
        assert session.state is SessionState.INACTIVE
        assert session.pid is None
        assert not session.is_active

    def test_first_evaluate_spawns(self, session):
        assert session.evaluate("2+2") == "4"
        assert session.state is SessionState.ACTIVE
        assert session.pid is not None
        assert session.info.spawn_count == 1

    def test_session_reuse_keeps_pid(self, session):
        assert session.evaluate("1+1") == "2"
        pid = session.pid
        assert session.evaluate("x=5;x*x") == "25"
        assert session.pid == pid
        assert session.info.spawn_count == 1

    def test_worker_state_persists_between_calls(self, session):
        assert session.evaluate("y=7") == ""
        assert session.evaluate("y*6") == "42"

    def test_close_tears_down_and_reaps(self, session):
        session.evaluate("1")
        pid = session.pid
        fds = session._channel.fds
        assert session.evaluate(CLOSE_COMMAND) == ""
        assert session.state is SessionState.INACTIVE
        assert session.pid is None
        assert is_reaped(pid)
        assert not any(fd_is_open(fd) for fd in fds)

    def test_close_then_evaluate_respawns(self, session):
        session.evaluate("z=3")
        first_pid = session.pid
        session.evaluate(CLOSE_COMMAND)
        assert session.evaluate("2*3") == "6"
        assert session.pid != first_pid
        # Fresh worker: no residual variables
        assert session.evaluate("z") == "0"
        assert session.info.spawn_count == 2

    def test_close_when_inactive_does_not_spawn(self, session):
        assert session.evaluate(CLOSE_COMMAND) == ""
        assert session.evaluate(CLOSE_COMMAND) == ""
        assert session.info.spawn_count == 0

    def test_teardown_is_idempotent(self, session):
        session.evaluate("1")
        session.teardown()
        session.teardown()
        assert session.state is SessionState.INACTIVE

    def test_context_manager_tears_down(self, fake_config):
        with CoprocessSession(config=fake_config) as session:
            session.evaluate("1")
            pid = session.pid
        assert session.state is SessionState.INACTIVE
        assert is_reaped(pid)

    def test_restart_replaces_worker(self, session):
        session.evaluate("1")
        pid = session.pid
        session.restart()
        assert session.is_active
        assert session.pid != pid
        assert is_reaped(pid)

    def test_info_reports_worker(self, session):
        session.evaluate("1")
        info = session.info
        assert info.state is SessionState.ACTIVE
        assert info.pid == session.pid
        assert info.evaluation_count == 1
        assert info.error_count == 0
        assert info.memory_usage > 0
        session.teardown()
        assert session.info.memory_usage == 0
        assert session.info.pid is None

    def test_independent_sessions(self):
        with create_session() as first, create_session() as second:
            first.evaluate("a=1")
            second.evaluate("a=2")
            assert first.evaluate("a") == "1"
            assert second.evaluate("a") == "2"
            assert first.pid != second.pid


@pytest.mark.integration
class TestResponseFraming:
    """Test response accumulation and trimming."""

    def test_multiline_output(self, session):
        assert session.evaluate("1;2;3") == "1\n2\n3"

    def test_output_longer_than_one_chunk(self):
        expected = str(2**1000)
        with create_session(read_chunk_size=4) as session:
            assert session.evaluate("2^1000") == expected

    def test_output_longer_than_default_chunk(self, session):
        assert session.evaluate("2^1000") == str(2**1000)

    def test_print_without_newline(self, session):
        assert session.evaluate('print "abc"') == "abc"
