"""Tests for the session: refresh ordering, failure handling and viewed sync."""

import pytest
from conftest import FakeSource, context_file, make_diffset, make_file, make_hunk

from sidediff.diff.models import SourceKind
from sidediff.errors import AuthError, NetworkError, NotFoundError, WatchError
from sidediff.session.messages import FetchCompleted, WatchDegraded, WatchTriggered
from sidediff.session.session import Session
from sidediff.state.snapshot import StatusLevel
from sidediff.state.viewer import MoveLine, ToggleViewed


class FakeWatcher:
    def __init__(self, source, post, *, epoch=0, poll_interval=None):
        self.source = source
        self.post = post
        self.epoch = epoch
        self.started = False
        self.stopped = False
        self.retries = 0

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def schedule_retry(self):
        self.retries += 1


@pytest.fixture
def watchers():
    return []


@pytest.fixture
def make_session(deferred_spawner, manual_scheduler, watchers):
    def factory(source, **kwargs):
        def watch_factory(*args, **kw):
            watcher = FakeWatcher(*args, **kw)
            watchers.append(watcher)
            return watcher

        kwargs.setdefault("watch", True)
        return Session(
            source,
            spawn=deferred_spawner,
            schedule=manual_scheduler,
            watch_factory=watch_factory,
            **kwargs,
        )

    return factory


def _one(path="a", text="x", **kwargs):
    return make_diffset(make_file(path, make_hunk([f"+{text}"])), **kwargs)


def _pr(*files):
    return make_diffset(*files, kind=SourceKind.PULL_REQUEST, pr_number=1)


class TestStart:
    def test_first_fetch_failure_propagates(self, make_session, watchers):
        session = make_session(FakeSource([NotFoundError("unknown revision 'nope'")]))
        with pytest.raises(NotFoundError):
            session.start()
        assert session.state is None
        assert watchers == []

    def test_start_installs_state_and_watcher(self, make_session, watchers):
        session = make_session(FakeSource([_one()]))
        state = session.start(viewport_height=12)
        assert state.current_path == "a"
        assert state.viewport_height == 12
        assert session.watching
        assert watchers[0].started

    def test_without_watch(self, make_session, watchers):
        session = make_session(FakeSource([_one()]), watch=False)
        session.start()
        assert not session.watching
        assert watchers == []
        assert not session.snapshot().footer.watching

    def test_dispatch_before_start(self, make_session):
        with pytest.raises(RuntimeError):
            make_session(FakeSource([_one()])).dispatch(MoveLine(1))


class TestRefresh:
    def test_drain_applies_fetch_result(self, make_session, deferred_spawner):
        source = FakeSource([_one("a"), _one("b")])
        session = make_session(source)
        session.start()
        session.request_refresh()
        assert session.drain() is False
        deferred_spawner.run_next()
        assert session.drain() is True
        assert session.state.current_path == "b"
        assert source.fetch_count == 2

    def test_single_flight_with_one_follow_up(self, make_session, deferred_spawner):
        session = make_session(FakeSource([_one("a"), _one("b"), _one("c")]))
        session.start()
        session.request_refresh()
        session.request_refresh()
        session.request_refresh()
        assert len(deferred_spawner.tasks) == 1
        deferred_spawner.run_next()
        session.drain()
        assert len(deferred_spawner.tasks) == 1
        deferred_spawner.run_next()
        session.drain()
        assert deferred_spawner.tasks == []
        assert session.state.current_path == "c"

    def test_older_result_never_replaces_newer(self, make_session):
        session = make_session(FakeSource([_one("a")]))
        session.start()
        session.post(FetchCompleted(session.epoch, 2, _one("new")))
        session.post(FetchCompleted(session.epoch, 1, _one("old")))
        session.drain()
        assert session.state.current_path == "new"

    def test_switch_source_discards_old_results(self, make_session, deferred_spawner):
        old = FakeSource([_one("a"), _one("stale")])
        session = make_session(old)
        session.start()
        session.request_refresh()
        new = FakeSource([_one("fresh")], name="new")
        session.switch_source(new)
        assert old.closed
        assert len(deferred_spawner.tasks) == 2
        deferred_spawner.run_next()
        assert session.drain() is False
        assert session.state.current_path == "a"
        deferred_spawner.run_next()
        assert session.drain() is True
        assert session.state.current_path == "fresh"

    def test_watch_trigger_starts_fetch(self, make_session, deferred_spawner):
        session = make_session(FakeSource([_one()]))
        session.start()
        session.post(WatchTriggered(session.epoch, "change"))
        session.drain()
        assert len(deferred_spawner.tasks) == 1

    def test_watch_degraded_sets_warning(self, make_session):
        session = make_session(FakeSource([_one()]))
        session.start()
        session.post(WatchDegraded(session.epoch, WatchError("inotify watch limit reached")))
        assert session.drain()
        assert session.status.level is StatusLevel.WARNING
        assert "polling instead" in session.status.message

    def test_keeps_cursor_across_refresh(self, make_session, deferred_spawner):
        session = make_session(FakeSource([make_diffset(context_file("a", 20)), make_diffset(context_file("a", 20))]))
        session.start()
        session.dispatch(MoveLine(6))
        session.request_refresh()
        deferred_spawner.run_next()
        session.drain()
        assert session.state.cursor.row == 6


class TestFetchFailures:
    def test_network_error_keeps_state_and_retries(self, make_session, deferred_spawner, watchers):
        session = make_session(FakeSource([_one("a"), NetworkError("timed out")]))
        session.start()
        session.request_refresh()
        deferred_spawner.run_next()
        assert session.drain()
        assert session.state.current_path == "a"
        assert session.status.level is StatusLevel.ERROR
        assert session.status.message == "Refresh failed: timed out"
        assert watchers[0].retries == 1
        assert not session.paused

    def test_auth_error_pauses_until_user_refresh(self, make_session, deferred_spawner, watchers):
        session = make_session(FakeSource([_one("a"), AuthError("bad credentials"), _one("b")]))
        session.start()
        session.request_refresh()
        deferred_spawner.run_next()
        session.drain()
        assert session.paused
        assert "press r to retry" in session.status.message
        assert session.snapshot().footer.paused
        assert watchers[0].retries == 0

        session.request_refresh()
        assert deferred_spawner.tasks == []

        session.request_refresh(user=True)
        assert not session.paused
        deferred_spawner.run_next()
        session.drain()
        assert session.state.current_path == "b"
        assert session.status is None

    def test_unexpected_exception_becomes_fetch_failure(self, make_session, deferred_spawner):
        session = make_session(FakeSource([_one("a"), ValueError("boom")]))
        session.start()
        session.request_refresh()
        deferred_spawner.run_next()
        session.drain()
        assert session.status.message == "Refresh failed: boom"

    def test_status_dismissed_and_cleared_by_commands(self, make_session, deferred_spawner):
        session = make_session(FakeSource([make_diffset(context_file("a", 5)), NetworkError("offline")]))
        session.start()
        session.request_refresh()
        deferred_spawner.run_next()
        session.drain()
        assert session.status is not None
        session.dispatch(MoveLine(1))
        assert session.status is None


class TestViewedSync:
    def _session(self, make_session, *files):
        source = FakeSource([_pr(*files)], kind=SourceKind.PULL_REQUEST, viewed_sync=True)
        session = make_session(source)
        session.start()
        return session, source

    def test_toggle_sends_remote_update(self, make_session, manual_scheduler):
        session, source = self._session(make_session, make_file("a", make_hunk(["+x"]), remote_viewed=False))
        session.dispatch(ToggleViewed())
        assert session.state.viewed == {"a"}
        manual_scheduler.run_all()
        assert source.viewed_calls == [("a", True)]
        assert session.drain() is False
        assert session.state.viewed == {"a"}

    def test_rapid_toggles_collapse(self, make_session, manual_scheduler):
        session, source = self._session(make_session, make_file("a", make_hunk(["+x"]), remote_viewed=False))
        session.dispatch(ToggleViewed())
        session.dispatch(ToggleViewed())
        session.dispatch(ToggleViewed())
        manual_scheduler.run_all()
        assert source.viewed_calls == [("a", True)]

    def test_failure_reverts_and_reports(self, make_session, manual_scheduler):
        session, source = self._session(make_session, make_file("a", make_hunk(["+x"]), remote_viewed=False))
        source.viewed_error = NetworkError("offline")
        session.dispatch(ToggleViewed())
        manual_scheduler.run_all()
        assert session.drain()
        assert session.state.viewed == frozenset()
        assert session.status.message == "Could not update viewed state of a: offline"

    def test_pending_intent_survives_refresh(self, make_session, deferred_spawner):
        session, source = self._session(make_session, make_file("a", make_hunk(["+x"]), remote_viewed=False))
        session.dispatch(ToggleViewed())
        session.request_refresh()
        deferred_spawner.run_next()
        session.drain()
        assert session.state.viewed == {"a"}

    def test_remote_flags_applied_on_refresh(self, make_session, deferred_spawner):
        session, source = self._session(make_session, make_file("a", make_hunk(["+x"]), remote_viewed=False))
        source.results = [_pr(make_file("a", make_hunk(["+x"]), remote_viewed=True))]
        session.request_refresh()
        deferred_spawner.run_next()
        session.drain()
        assert session.state.viewed == {"a"}

    def test_local_source_has_no_sync(self, make_session, manual_scheduler):
        source = FakeSource([_one()])
        session = make_session(source)
        session.start()
        session.dispatch(ToggleViewed())
        assert manual_scheduler.handles == []
        assert session.state.viewed == {"a"}


class TestClose:
    def test_close_stops_everything(self, make_session, deferred_spawner, watchers):
        source = FakeSource([_one("a"), _one("b")])
        session = make_session(source)
        session.start()
        session.request_refresh()
        session.close()
        assert source.closed
        assert watchers[0].stopped
        deferred_spawner.run_next()
        assert session.drain() is False
        assert session.state.current_path == "a"

    def test_no_refresh_after_close(self, make_session, deferred_spawner):
        session = make_session(FakeSource([_one()]))
        session.start()
        session.close()
        session.close()
        session.request_refresh(user=True)
        assert deferred_spawner.tasks == []

    def test_editor_target(self, make_session):
        session = make_session(FakeSource([_one("a")]))
        assert session.editor_target() is None
        session.start()
        assert session.editor_target() == ("a", 1)

