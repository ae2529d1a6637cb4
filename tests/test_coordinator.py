"""Tests for the session coordinator."""

import json

import pytest

from claude_pulse.bridge import SessionIdBridge
from claude_pulse.coordinator import SessionCoordinator, should_redirect
from claude_pulse.events import SnapshotUpdated, StateChanged, WatchFailed
from claude_pulse.schemas import decode_status
from claude_pulse.state import AgentState

TOOL_USE = {"type": "assistant", "message": {"content": [{"type": "tool_use"}]}}


def _write_transcript(path, *entries):
    path.write_text("".join(json.dumps(e) + "\n" for e in entries), encoding="utf-8")


def _snapshot(external_id, transcript_path=None):
    payload = {"session_id": external_id, "model": {"display_name": "Opus"}}
    if transcript_path is not None:
        payload["transcript_path"] = str(transcript_path)
    return decode_status(json.dumps(payload))


@pytest.fixture
def status_dir(tmp_path):
    path = tmp_path / "status"
    path.mkdir()
    return path


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "projects" / "app"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def events():
    return []


@pytest.fixture
def coordinator(status_dir, directory_watcher, events):
    return SessionCoordinator(status_dir, events.append, directory_watcher=directory_watcher)


def _link(status_dir, external_id, stable_id):
    SessionIdBridge(status_dir).record(external_id, stable_id)


class TestShouldRedirect:
    """Tests for the transcript re-assignment guard."""

    def test_nothing_watched_allows(self, tmp_path):
        assert should_redirect(None, False, tmp_path / "missing.jsonl")

    def test_pending_watch_allows(self, tmp_path):
        """A session without a live transcript may always move."""
        assert should_redirect(tmp_path / "a.jsonl", False, tmp_path / "missing.jsonl")

    def test_same_path_allows(self, tmp_path):
        path = tmp_path / "a.jsonl"
        assert should_redirect(path, True, path)

    def test_live_watch_blocks_missing_target(self, tmp_path):
        assert not should_redirect(tmp_path / "a.jsonl", True, tmp_path / "missing.jsonl")

    def test_live_watch_allows_existing_target(self, tmp_path):
        target = tmp_path / "b.jsonl"
        target.write_text("")
        assert should_redirect(tmp_path / "a.jsonl", True, target)


class TestSessionLifecycle:
    """Tests for create / get / list / delete."""

    def test_create_starts_idle(self, coordinator, project_dir):
        view = coordinator.create_session("stable-1", project_dir)

        assert view.state == AgentState.IDLE
        assert view.name == "app"
        assert view.snapshot is None
        assert coordinator.get_session("stable-1") == view

    def test_duplicate_id_rejected(self, coordinator, project_dir):
        coordinator.create_session("stable-1", project_dir)
        with pytest.raises(ValueError):
            coordinator.create_session("stable-1", project_dir)

    def test_list_filters_by_state(self, coordinator, project_dir):
        coordinator.create_session("stable-1", project_dir)
        coordinator.create_session("stable-2", project_dir, name="other")
        coordinator.mark_error("stable-2", "terminal closed")

        assert [v.session_id for v in coordinator.list_sessions()] == ["stable-1", "stable-2"]
        errored = coordinator.list_sessions(AgentState.ERROR)
        assert [v.session_id for v in errored] == ["stable-2"]

    def test_resolve_by_claude_session_id(self, coordinator, status_dir, project_dir):
        coordinator.create_session("stable-1", project_dir)
        _link(status_dir, "claude-a", "stable-1")
        coordinator.handle_status_update("claude-a", _snapshot("claude-a"))

        assert coordinator.resolve_session("claude-a").session_id == "stable-1"
        assert coordinator.resolve_session("app").session_id == "stable-1"
        assert coordinator.resolve_session("nope") is None

    def test_delete_unknown_returns_none(self, coordinator):
        assert coordinator.delete_session("missing") is None

    @pytest.mark.asyncio
    async def test_delete_cleans_up_watches_and_status_files(
        self, coordinator, status_dir, project_dir, fake_observer, events, notify
    ):
        await coordinator.start()
        coordinator.create_session("stable-1", project_dir)
        transcript = project_dir / "t1.jsonl"
        _write_transcript(transcript, {"type": "user"})
        _link(status_dir, "claude-a", "stable-1")
        status_file = status_dir / "claude-a.json"
        status_file.write_text(json.dumps({"session_id": "claude-a", "transcript_path": str(transcript)}))
        notify(status_file)
        assert coordinator.get_session("stable-1").state == AgentState.THINKING

        view = coordinator.delete_session("stable-1")
        events.clear()

        assert view.session_id == "stable-1"
        assert coordinator.get_session("stable-1") is None
        assert not status_file.exists()
        assert fake_observer.scheduled_paths == [str(status_dir)]

        _write_transcript(transcript, TOOL_USE)
        notify(transcript)
        assert events == []

        await coordinator.stop()

    def test_create_with_transcript_path_resumes_watch(self, coordinator, project_dir, events):
        transcript = project_dir / "t1.jsonl"
        _write_transcript(transcript, TOOL_USE)

        view = coordinator.create_session("stable-1", project_dir, transcript_path=transcript)

        assert view.state == AgentState.TOOL_USE
        assert view.transcript_path == transcript
        assert events == [StateChanged("stable-1", AgentState.TOOL_USE, json.dumps(TOOL_USE))]


class TestStatusUpdates:
    """Tests for applying status snapshots."""

    def test_unresolved_update_is_dropped(self, coordinator, project_dir, events):
        coordinator.create_session("stable-1", project_dir)

        coordinator.handle_status_update("claude-a", _snapshot("claude-a"))

        assert events == []
        assert coordinator.get_session("stable-1").snapshot is None

    def test_mapping_to_unknown_session_is_dropped(self, coordinator, status_dir, events):
        _link(status_dir, "claude-a", "never-created")

        coordinator.handle_status_update("claude-a", _snapshot("claude-a"))

        assert events == []

    def test_resolved_update_stores_snapshot_and_watches(
        self, coordinator, status_dir, project_dir, events
    ):
        coordinator.create_session("stable-1", project_dir)
        transcript = project_dir / "t1.jsonl"
        _write_transcript(transcript, TOOL_USE)
        _link(status_dir, "claude-a", "stable-1")

        snapshot = _snapshot("claude-a", transcript)
        coordinator.handle_status_update("claude-a", snapshot)

        view = coordinator.get_session("stable-1")
        assert view.snapshot == snapshot
        assert view.external_session_id == "claude-a"
        assert view.transcript_path == transcript
        assert view.state == AgentState.TOOL_USE
        assert events[0] == SnapshotUpdated("stable-1", "claude-a", snapshot)
        assert isinstance(events[1], StateChanged)

    def test_snapshot_without_transcript_only_updates_snapshot(
        self, coordinator, status_dir, project_dir, events
    ):
        coordinator.create_session("stable-1", project_dir)
        _link(status_dir, "claude-a", "stable-1")

        coordinator.handle_status_update("claude-a", _snapshot("claude-a"))

        assert len(events) == 1
        assert coordinator.get_session("stable-1").transcript_path is None

    def test_missing_transcript_is_watched_when_nothing_live(
        self, coordinator, status_dir, project_dir
    ):
        coordinator.create_session("stable-1", project_dir)
        _link(status_dir, "claude-a", "stable-1")
        transcript = project_dir / "t1.jsonl"

        coordinator.handle_status_update("claude-a", _snapshot("claude-a", transcript))

        assert coordinator.transcript_watcher.is_pending("stable-1")
        assert coordinator.get_session("stable-1").transcript_path == transcript


class TestReassignmentGuard:
    """Tests for keeping a session on its live transcript."""

    def test_stays_on_live_transcript_until_new_one_exists(
        self, coordinator, status_dir, project_dir, events, notify
    ):
        coordinator.create_session("stable-1", project_dir)
        t1 = project_dir / "t1.jsonl"
        t2 = project_dir / "t2.jsonl"
        _write_transcript(t1, {"type": "user"})
        _link(status_dir, "claude-a", "stable-1")
        _link(status_dir, "claude-b", "stable-1")

        coordinator.handle_status_update("claude-a", _snapshot("claude-a", t1))
        coordinator.handle_status_update("claude-b", _snapshot("claude-b", t2))

        # Snapshot always updates, the watch does not move
        view = coordinator.get_session("stable-1")
        assert view.external_session_id == "claude-b"
        assert view.transcript_path == t1
        assert coordinator.transcript_watcher.is_live("stable-1")

        # t1 keeps driving the state
        _write_transcript(t1, {"type": "user"}, TOOL_USE)
        notify(t1)
        assert coordinator.get_session("stable-1").state == AgentState.TOOL_USE

        # Once t2 exists the next status update switches over
        _write_transcript(t2, {"type": "user"})
        coordinator.handle_status_update("claude-b", _snapshot("claude-b", t2))

        view = coordinator.get_session("stable-1")
        assert view.transcript_path == t2
        assert view.state == AgentState.THINKING

    def test_deferred_switch_on_unrelated_update(
        self, coordinator, status_dir, project_dir
    ):
        coordinator.create_session("stable-1", project_dir)
        t1 = project_dir / "t1.jsonl"
        t2 = project_dir / "t2.jsonl"
        _write_transcript(t1, {"type": "user"})
        _link(status_dir, "claude-a", "stable-1")
        _link(status_dir, "claude-b", "stable-1")
        coordinator.handle_status_update("claude-a", _snapshot("claude-a", t1))
        coordinator.handle_status_update("claude-b", _snapshot("claude-b", t2))

        _write_transcript(t2, TOOL_USE)
        coordinator.handle_status_update("someone-else", _snapshot("someone-else"))

        assert coordinator.get_session("stable-1").transcript_path == t2

    def test_switches_when_deferred_transcript_is_created(
        self, coordinator, status_dir, project_dir, directory_watcher, notify
    ):
        coordinator.create_session("stable-1", project_dir)
        t1 = project_dir / "t1.jsonl"
        t2 = project_dir / "t2.jsonl"
        _write_transcript(t1, {"type": "user"})
        _link(status_dir, "claude-a", "stable-1")
        _link(status_dir, "claude-b", "stable-1")
        coordinator.handle_status_update("claude-a", _snapshot("claude-a", t1))
        coordinator.handle_status_update("claude-b", _snapshot("claude-b", t2))
        assert directory_watcher.subscriber_count(project_dir) == 2

        # No further status write: creating t2 alone moves the session
        _write_transcript(t2, TOOL_USE)
        notify(t2)

        view = coordinator.get_session("stable-1")
        assert view.transcript_path == t2
        assert view.state == AgentState.TOOL_USE
        assert directory_watcher.subscriber_count(project_dir) == 1

    def test_newer_deferred_target_replaces_older(
        self, coordinator, status_dir, project_dir, directory_watcher, notify
    ):
        coordinator.create_session("stable-1", project_dir)
        t1 = project_dir / "t1.jsonl"
        t2 = project_dir / "t2.jsonl"
        t3 = project_dir / "t3.jsonl"
        _write_transcript(t1, {"type": "user"})
        for external_id in ("claude-a", "claude-b", "claude-c"):
            _link(status_dir, external_id, "stable-1")
        coordinator.handle_status_update("claude-a", _snapshot("claude-a", t1))
        coordinator.handle_status_update("claude-b", _snapshot("claude-b", t2))
        coordinator.handle_status_update("claude-c", _snapshot("claude-c", t3))
        assert directory_watcher.subscriber_count(project_dir) == 2

        _write_transcript(t2, TOOL_USE)
        notify(t2)
        assert coordinator.get_session("stable-1").transcript_path == t1

        _write_transcript(t3, TOOL_USE)
        notify(t3)
        assert coordinator.get_session("stable-1").transcript_path == t3

    def test_delete_releases_deferred_watch(
        self, coordinator, status_dir, project_dir, directory_watcher, events, notify
    ):
        coordinator.create_session("stable-1", project_dir)
        t1 = project_dir / "t1.jsonl"
        t2 = project_dir / "t2.jsonl"
        _write_transcript(t1, {"type": "user"})
        _link(status_dir, "claude-a", "stable-1")
        _link(status_dir, "claude-b", "stable-1")
        coordinator.handle_status_update("claude-a", _snapshot("claude-a", t1))
        coordinator.handle_status_update("claude-b", _snapshot("claude-b", t2))

        coordinator.delete_session("stable-1")
        events.clear()
        _write_transcript(t2, TOOL_USE)
        notify(t2)

        assert directory_watcher.subscriber_count(project_dir) == 0
        assert events == []

    def test_stale_run_delivered_after_live_run_is_ignored(
        self, coordinator, status_dir, project_dir
    ):
        coordinator.create_session("stable-1", project_dir)
        live = project_dir / "live.jsonl"
        stale = project_dir / "stale.jsonl"
        _write_transcript(live, TOOL_USE)
        _link(status_dir, "claude-live", "stable-1")
        _link(status_dir, "claude-stale", "stable-1")

        coordinator.handle_status_update("claude-live", _snapshot("claude-live", live))
        coordinator.handle_status_update("claude-stale", _snapshot("claude-stale", stale))

        assert coordinator.get_session("stable-1").transcript_path == live
        assert coordinator.get_session("stable-1").state == AgentState.TOOL_USE


class TestStateChanges:
    """Tests for applying classified states and errors."""

    def test_state_change_for_unknown_session_is_ignored(self, coordinator, events):
        coordinator.handle_state_change(StateChanged("missing", AgentState.THINKING, "{}"))
        assert events == []

    def test_state_change_overwrites_state_and_line(self, coordinator, project_dir):
        coordinator.create_session("stable-1", project_dir)

        coordinator.handle_state_change(StateChanged("stable-1", AgentState.TOOL_USE, "line-1"))
        coordinator.handle_state_change(StateChanged("stable-1", AgentState.THINKING, "line-2"))

        view = coordinator.get_session("stable-1")
        assert view.state == AgentState.THINKING
        assert view.transcript_line == "line-2"

    def test_mark_error_then_transcript_recovers(self, coordinator, project_dir, events, notify):
        transcript = project_dir / "t1.jsonl"
        _write_transcript(transcript, {"type": "user"})
        coordinator.create_session("stable-1", project_dir, transcript_path=transcript)

        assert coordinator.mark_error("stable-1", "terminal closed")
        view = coordinator.get_session("stable-1")
        assert view.state == AgentState.ERROR
        assert view.error_detail == "terminal closed"
        assert events[-1] == StateChanged("stable-1", AgentState.ERROR, None)

        _write_transcript(transcript, {"type": "user"}, TOOL_USE)
        notify(transcript)

        view = coordinator.get_session("stable-1")
        assert view.state == AgentState.TOOL_USE
        assert view.error_detail is None

    def test_mark_error_unknown_session(self, coordinator):
        assert coordinator.mark_error("missing") is False

    def test_watch_failed_is_forwarded_and_state_kept(self, coordinator, project_dir, events):
        coordinator.create_session("stable-1", project_dir)
        coordinator.handle_state_change(StateChanged("stable-1", AgentState.THINKING, "line"))
        events.clear()

        missing = project_dir / "gone" / "t1.jsonl"
        coordinator._route_transcript(coordinator.registry.get("stable-1"), missing)

        assert len(events) == 1
        assert isinstance(events[0], WatchFailed)
        view = coordinator.get_session("stable-1")
        assert view.state == AgentState.THINKING
        assert view.transcript_path is None

    def test_callback_exception_is_swallowed(self, status_dir, directory_watcher, project_dir):
        def broken(event):
            raise RuntimeError("boom")

        coordinator = SessionCoordinator(status_dir, broken, directory_watcher=directory_watcher)
        coordinator.create_session("stable-1", project_dir)

        coordinator.handle_state_change(StateChanged("stable-1", AgentState.THINKING, "line"))

        assert coordinator.get_session("stable-1").state == AgentState.THINKING


class TestStartStop:
    """Tests for the coordinator lifecycle."""

    @pytest.mark.asyncio
    async def test_start_delivers_existing_status_files(
        self, coordinator, status_dir, project_dir, events
    ):
        coordinator.create_session("stable-1", project_dir)
        _link(status_dir, "claude-a", "stable-1")
        (status_dir / "claude-a.json").write_text(json.dumps({"session_id": "claude-a"}))

        await coordinator.start()

        assert coordinator.is_running
        assert [type(e) for e in events] == [SnapshotUpdated]
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_session_created_after_start_gets_existing_status(
        self, coordinator, status_dir, project_dir, events
    ):
        transcript = project_dir / "t1.jsonl"
        _write_transcript(transcript, TOOL_USE)
        _link(status_dir, "claude-a", "stable-1")
        status = {"session_id": "claude-a", "transcript_path": str(transcript)}
        (status_dir / "claude-a.json").write_text(json.dumps(status))
        (status_dir / "claude-other.json").write_text(json.dumps({"session_id": "claude-other"}))

        await coordinator.start()
        assert events == []

        view = coordinator.create_session("stable-1", project_dir)

        assert view.external_session_id == "claude-a"
        assert view.snapshot is not None
        assert view.transcript_path == transcript
        assert view.state == AgentState.TOOL_USE
        assert [type(e) for e in events] == [SnapshotUpdated, StateChanged]

        # Nothing changed on disk, so the next scan delivers nothing new
        coordinator.status_watcher.check_for_updates()
        assert len(events) == 2
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_stop_silences_everything(
        self, coordinator, status_dir, project_dir, events, fake_observer, notify
    ):
        transcript = project_dir / "t1.jsonl"
        _write_transcript(transcript, {"type": "user"})
        await coordinator.start()
        coordinator.create_session("stable-1", project_dir, transcript_path=transcript)
        events.clear()

        await coordinator.stop()
        _write_transcript(transcript, TOOL_USE)
        notify(transcript)
        notify(status_dir / "claude-a.json")

        assert events == []
        assert not coordinator.is_running
        assert fake_observer.stopped
