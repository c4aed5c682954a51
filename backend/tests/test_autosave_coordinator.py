import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fakes import FakeRemoteStore

from exchange.engines.autosave.coordinator import AutosaveState, DebouncedSaveCoordinator
from exchange.engines.autosave.local_cache import LocalDraftCache
from exchange.engines.autosave.persistence import DualTierPersistence
from exchange.engines.experience.models import FormSession


class BrokenLocalCache(LocalDraftCache):
    def write(self, form_type, session_id, snapshot):
        raise OSError("disk full")


async def _no_sleep(delay: float) -> None:
    return None


def _build(tmp_path: Path, debounce: float = 0.05, retry_attempts: int = 1, cache=None):
    remote = FakeRemoteStore()
    persistence = DualTierPersistence(
        cache or LocalDraftCache(tmp_path / "cache"),
        remote,
        retry_attempts=retry_attempts,
        sleep=_no_sleep,
    )
    session = FormSession(session_id="s-1")
    coordinator = DebouncedSaveCoordinator(session, persistence, debounce_seconds=debounce)
    return session, coordinator, remote


def test_edits_within_quiet_period_coalesce_into_one_save(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path, debounce=0.1)

    async def scenario():
        for rent in range(1, 6):
            session.update_section("accommodation", {"monthlyRent": rent * 100})
            assert coordinator.notify_change() is True
            await asyncio.sleep(0.01)
        assert remote.save_calls == []
        await asyncio.sleep(0.3)
        await coordinator.wait_idle()
        coordinator.close()

    asyncio.run(scenario())

    assert len(remote.save_calls) == 1
    assert remote.save_calls[0]["sections"] == {"accommodation": {"monthlyRent": 500}}
    assert coordinator.state.has_unsaved_changes is False
    assert coordinator.state.last_saved is not None


def test_unchanged_snapshot_is_saved_once(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path)

    async def scenario():
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        await coordinator.save_now()
        session.update_section("basicInfo", {"firstName": "Ana"})
        assert coordinator.notify_change() is False
        await coordinator.save_now()
        coordinator.close()

    asyncio.run(scenario())

    assert len(remote.save_calls) == 1


def test_manual_save_flushes_pending_edits_once(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path, debounce=0.2)

    async def scenario():
        session.update_section("accommodation", {"accommodationType": "Studio"})
        coordinator.notify_change()
        await asyncio.sleep(0.05)
        session.update_section("accommodation", {"accommodationType": "Studio", "monthlyRent": 640})
        coordinator.notify_change()
        await coordinator.save_now()
        assert coordinator.has_pending_timer is False
        await asyncio.sleep(0.3)
        coordinator.close()

    asyncio.run(scenario())

    assert len(remote.save_calls) == 1
    assert remote.save_calls[0]["sections"] == {
        "accommodation": {"accommodationType": "Studio", "monthlyRent": 640}
    }


def test_edits_during_an_in_flight_save_queue_one_follow_up(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path)

    async def scenario():
        remote.gate = asyncio.Event()
        session.update_section("basicInfo", {"firstName": "A"})
        coordinator.notify_change()
        first = asyncio.create_task(coordinator.save_now())
        await asyncio.sleep(0.01)
        assert coordinator.in_flight is True

        session.update_section("basicInfo", {"firstName": "An"})
        coordinator.notify_change()
        second = asyncio.create_task(coordinator.save_now())
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        third = asyncio.create_task(coordinator.save_now())
        await asyncio.sleep(0.01)
        assert len(remote.save_calls) == 1

        remote.gate.set()
        await asyncio.gather(first, second, third)
        await asyncio.sleep(0.1)
        coordinator.close()

    asyncio.run(scenario())

    assert [call["sections"]["basicInfo"]["firstName"] for call in remote.save_calls] == ["A", "Ana"]
    assert coordinator.state.has_unsaved_changes is False


def test_failed_remote_save_keeps_unsaved_changes(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path)
    remote.offline = True

    async def scenario():
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        state = await coordinator.save_now()
        assert state.save_error == "Changes saved locally only"
        assert state.has_unsaved_changes is True
        assert state.degraded is True
        assert coordinator.persistence.local.read("experience", "s-1")["sections"] == {
            "basicInfo": {"firstName": "Ana"}
        }

        remote.offline = False
        state = await coordinator.save_now()
        assert state.save_error is None
        assert state.degraded is False
        assert state.has_unsaved_changes is False
        coordinator.close()

    asyncio.run(scenario())

    assert len(remote.save_calls) == 2


def test_reverting_to_the_saved_snapshot_clears_unsaved_flag(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path, debounce=5)

    async def scenario():
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        await coordinator.save_now()

        session.update_section("basicInfo", {"firstName": "Anna"})
        coordinator.notify_change()
        assert coordinator.state.has_unsaved_changes is True
        assert coordinator.has_pending_timer is True

        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        assert coordinator.state.has_unsaved_changes is False
        assert coordinator.has_pending_timer is False
        coordinator.close()

    asyncio.run(scenario())

    assert len(remote.save_calls) == 1


def test_close_cancels_pending_save(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path)

    async def scenario():
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        coordinator.close()
        await asyncio.sleep(0.15)
        assert coordinator.notify_change() is False

    asyncio.run(scenario())

    assert remote.save_calls == []


def test_in_flight_result_is_ignored_after_close(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path)
    seen: list[AutosaveState] = []
    coordinator.on_state_change = lambda state: seen.append(state.is_saving)

    async def scenario():
        remote.gate = asyncio.Event()
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        pending = asyncio.create_task(coordinator.save_now())
        await asyncio.sleep(0.01)
        coordinator.close()
        remote.gate.set()
        await pending

    asyncio.run(scenario())

    assert len(remote.save_calls) == 1
    assert coordinator.state.last_saved is None
    assert coordinator.state.is_saving is False
    assert seen[-1] is True


def test_edits_outside_the_event_loop_wait_for_a_manual_save(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path)

    session.update_section("basicInfo", {"firstName": "Ana"})
    assert coordinator.notify_change() is True
    assert coordinator.has_pending_timer is False
    assert coordinator.state.has_unsaved_changes is True

    state = asyncio.run(coordinator.save_now())

    assert len(remote.save_calls) == 1
    assert state.has_unsaved_changes is False


def test_unload_after_close_does_not_write(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path, debounce=5)
    session.update_section("basicInfo", {"firstName": "Ana"})
    coordinator.close()

    result = coordinator.flush_on_unload()

    assert result.local_saved is False
    assert result.warn is False
    assert coordinator.persistence.local.read("experience", "s-1") is None


def test_unload_writes_local_copy(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path, debounce=5)

    async def scenario():
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        result = coordinator.flush_on_unload()
        coordinator.close()
        return result

    result = asyncio.run(scenario())

    assert result.local_saved is True
    assert result.warn is False
    assert remote.save_calls == []
    assert coordinator.persistence.local.read("experience", "s-1")["sections"] == {
        "basicInfo": {"firstName": "Ana"}
    }


def test_unload_warns_when_local_write_fails_with_unsaved_changes(tmp_path: Path):
    session, coordinator, remote = _build(tmp_path, debounce=5, cache=BrokenLocalCache(tmp_path))

    async def scenario():
        clean = coordinator.flush_on_unload()
        session.update_section("basicInfo", {"firstName": "Ana"})
        coordinator.notify_change()
        dirty = coordinator.flush_on_unload()
        coordinator.close()
        return clean, dirty

    clean, dirty = asyncio.run(scenario())

    assert clean.local_saved is False
    assert clean.warn is False
    assert dirty.local_saved is False
    assert dirty.warn is True


def test_last_saved_text():
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert AutosaveState().last_saved_text(now) is None
    assert AutosaveState(last_saved=now - timedelta(seconds=30)).last_saved_text(now) == "Saved just now"
    assert AutosaveState(last_saved=now - timedelta(minutes=5)).last_saved_text(now) == "Saved 5m ago"
    assert AutosaveState(last_saved=now - timedelta(hours=2)).last_saved_text(now) == "Saved 2h ago"
    assert AutosaveState(last_saved=now - timedelta(days=3)).last_saved_text(now) == "Saved 3d ago"
