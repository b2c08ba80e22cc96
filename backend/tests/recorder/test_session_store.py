"""
Unit tests for RecordingSessionStore.

Tests the session state machine, step mutations, ordering under
concurrency, read-through hydration and durable mirroring.
"""

import pytest
import asyncio
from pathlib import Path
from unittest.mock import Mock, AsyncMock
import sys

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "app"))

from playwright.async_api import Error as PlaywrightError

from models import ActionType, HealingStrategy, SessionStatus
from recorder.browser import BrowserManager
from recorder.core import RecordingSessionStore
from recorder.errors import (
    DriverUnavailable,
    HealingExhausted,
    InvalidTransition,
    SessionNotFound,
    StepNotFound,
    ValidationFailure,
)
from recorder.healing import SelfHealingEngine
from recorder.notifications import NotificationHub


def click(selector, description=""):
    draft = {"type": "click", "selector": selector}
    if description:
        draft["description"] = description
    return draft


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


class TestCreateSession:
    """Test session creation."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, store, storage, browser_manager):
        """Test a new session starts created, bound and durably mirrored."""
        session = await store.create_session({"test_name": "Checkout", "target_url": "https://shop.example.com"})

        assert session.status == SessionStatus.CREATED
        assert session.steps == []
        assert session.settings.confidence_threshold == 0.8
        assert session.settings.healing_strategies == [
            HealingStrategy.ATTRIBUTE_MATCHING,
            HealingStrategy.TEXT_CONTENT_MATCHING,
            HealingStrategy.POSITIONAL_MATCHING,
        ]
        assert browser_manager.get_session(session.id) is not None
        assert storage.get_session(session.id).test_name == "Checkout"

    @pytest.mark.asyncio
    async def test_create_rejects_bad_url(self, store):
        """Test malformed input is rejected with per-field detail."""
        with pytest.raises(ValidationFailure) as exc_info:
            await store.create_session({"test_name": "Broken", "target_url": "ftp://example.com"})

        assert any(error["field"] == "target_url" for error in exc_info.value.errors)
        assert await store.list_sessions() == []

    @pytest.mark.asyncio
    async def test_create_without_driver(self, storage, hub):
        """Test a session survives a failed browser launch; starting it reports DriverUnavailable."""
        starter = Mock()
        starter.start = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        manager = BrowserManager(playwright_factory=Mock(return_value=starter))
        store = RecordingSessionStore(storage, hub, manager, reconcile_interval=0)

        session = await store.create_session({"test_name": "No Driver", "target_url": "https://example.com"})

        assert manager.get_session(session.id) is None
        with pytest.raises(DriverUnavailable):
            await store.start_recording(session.id)
        assert (await store.get_session(session.id)).status == SessionStatus.CREATED


class TestStateMachine:
    """Test lifecycle transitions."""

    @pytest.mark.asyncio
    async def test_start_navigates_and_records_initial_step(self, store, hub, consumer, mock_page, login_flow):
        session = await store.create_session(login_flow)
        hub.join(session.id, consumer)

        started = await store.start_recording(session.id)

        mock_page.goto.assert_awaited_once_with("https://example.com")
        mock_page.add_init_script.assert_awaited_once()
        assert started.status == SessionStatus.RECORDING
        assert started.steps[0].type == ActionType.NAVIGATE
        assert started.steps[0].action_params == {"url": "https://example.com"}
        assert store.browser_manager.get_session(session.id).is_recording is True
        assert consumer.events()[:2] == ["recording:started", "step:recorded"]

        await store.close()

    @pytest.mark.asyncio
    async def test_pause_twice_is_rejected(self, store, login_flow):
        """Test start -> pause -> pause again raises InvalidTransition."""
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)
        await store.pause_recording(session.id)

        with pytest.raises(InvalidTransition):
            await store.pause_recording(session.id)
        assert (await store.get_session(session.id)).status == SessionStatus.PAUSED

        await store.close()

    @pytest.mark.asyncio
    async def test_stop_twice_is_idempotent(self, store, mock_browser, login_flow):
        """Test start -> stop -> stop again succeeds and releases the binding once."""
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)

        first = await store.stop_recording(session.id)
        second = await store.stop_recording(session.id)

        assert first.status == SessionStatus.STOPPED
        assert second.status == SessionStatus.STOPPED
        assert store.browser_manager.get_session(session.id) is None
        assert store.capture.is_attached(session.id) is False
        context = mock_browser.new_context.return_value
        context.close.assert_awaited_once()

        await store.close()

    @pytest.mark.asyncio
    async def test_pause_resume_toggle(self, store, login_flow):
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)

        paused = await store.pause_recording(session.id)
        binding = store.browser_manager.get_session(session.id)
        assert paused.status == SessionStatus.PAUSED
        assert binding.is_recording is False

        resumed = await store.resume_recording(session.id)
        assert resumed.status == SessionStatus.RECORDING
        assert binding.is_recording is True

        with pytest.raises(InvalidTransition):
            await store.resume_recording(session.id)

        await store.close()

    @pytest.mark.asyncio
    async def test_start_twice_is_rejected(self, store, login_flow):
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)

        with pytest.raises(InvalidTransition):
            await store.start_recording(session.id)

        await store.close()

    @pytest.mark.asyncio
    async def test_concurrent_start_only_one_wins(self, store, mock_page, login_flow):
        session = await store.create_session(login_flow)

        results = await asyncio.gather(
            store.start_recording(session.id),
            store.start_recording(session.id),
            return_exceptions=True
        )

        assert sum(1 for r in results if isinstance(r, InvalidTransition)) == 1
        assert mock_page.goto.await_count == 1

        await store.close()

    @pytest.mark.asyncio
    async def test_stop_from_created_is_rejected(self, store, login_flow):
        session = await store.create_session(login_flow)

        with pytest.raises(InvalidTransition):
            await store.stop_recording(session.id)

    @pytest.mark.asyncio
    async def test_complete_only_after_stop(self, store, hub, consumer, login_flow):
        session = await store.create_session(login_flow)
        hub.join(session.id, consumer)
        await store.start_recording(session.id)

        with pytest.raises(InvalidTransition):
            await store.complete_session(session.id)

        await store.stop_recording(session.id)
        completed = await store.complete_session(session.id)

        assert completed.status == SessionStatus.COMPLETED
        assert "session:completed" in consumer.events()

        await store.close()

    @pytest.mark.asyncio
    async def test_delete_during_bind_releases_context(self, store, browser_manager, mock_browser, login_flow):
        """Test a session deleted while its context is being created leaves no binding behind."""
        context = mock_browser.new_context.return_value
        gate = asyncio.Event()

        async def gated_context(**options):
            await gate.wait()
            return context

        mock_browser.new_context = AsyncMock(side_effect=gated_context)
        creating = asyncio.create_task(store.create_session(login_flow))
        await wait_until(lambda: mock_browser.new_context.call_count == 1)
        session_id = next(iter(store._sessions))

        await store.delete_session(session_id)
        gate.set()

        with pytest.raises(SessionNotFound):
            await creating
        assert browser_manager.get_session(session_id) is None
        assert browser_manager.engine_refcount("chromium") == 0
        context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_navigation_failure_leaves_session_created(self, store, mock_page, login_flow):
        session = await store.create_session(login_flow)
        mock_page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        with pytest.raises(DriverUnavailable):
            await store.start_recording(session.id)

        assert (await store.get_session(session.id)).status == SessionStatus.CREATED
        assert store.capture.is_attached(session.id) is False

    @pytest.mark.asyncio
    async def test_start_without_binding(self, store, browser_manager, login_flow):
        session = await store.create_session(login_flow)
        await browser_manager.close_session(session.id)

        with pytest.raises(DriverUnavailable):
            await store.start_recording(session.id)

    @pytest.mark.asyncio
    async def test_attach_driver_rebinds(self, store, browser_manager, login_flow):
        session = await store.create_session(login_flow)
        await browser_manager.close_session(session.id)

        await store.attach_driver(session.id)

        assert browser_manager.get_session(session.id) is not None

    @pytest.mark.asyncio
    async def test_unknown_session(self, store):
        with pytest.raises(SessionNotFound):
            await store.start_recording("missing")
        with pytest.raises(SessionNotFound):
            await store.get_session("missing")


class TestSteps:
    """Test step mutations and fallback computation."""

    @pytest.mark.asyncio
    async def test_login_flow_fallbacks(self, store, login_flow):
        """Test a click on #submit-button gets attribute and text derived fallbacks."""
        session = await store.create_session(login_flow)

        step = await store.add_step(session.id, click("#submit-button"))

        assert step.fallback_selectors
        assert '[data-testid="submit-button"]' in step.fallback_selectors
        assert 'button:has-text("Submit")' in step.fallback_selectors
        assert len(step.fallback_selectors) == len(set(step.fallback_selectors))
        assert step.description == "Click on #submit-button"

    @pytest.mark.asyncio
    async def test_selector_edit_recomputes_fallbacks(self, store, login_flow):
        """Test changing the selector replaces the fallback list."""
        session = await store.create_session(login_flow)
        step = await store.add_step(session.id, click("#submit-button"))

        updated = await store.update_step(session.id, step.id, {"selector": ".alt-button"})

        expected = SelfHealingEngine().generate_fallbacks(
            ".alt-button",
            ActionType.CLICK,
            [HealingStrategy.ATTRIBUTE_MATCHING, HealingStrategy.TEXT_CONTENT_MATCHING]
        )
        assert updated.fallback_selectors != step.fallback_selectors
        assert updated.fallback_selectors == expected
        assert '[data-testid="submit-button"]' not in updated.fallback_selectors

    @pytest.mark.asyncio
    async def test_other_edits_keep_fallbacks(self, store, login_flow):
        session = await store.create_session(login_flow)
        step = await store.add_step(session.id, click("#submit-button"))

        updated = await store.update_step(session.id, step.id, {"description": "Submit the login form"})

        assert updated.fallback_selectors == step.fallback_selectors
        assert updated.description == "Submit the login form"

    @pytest.mark.asyncio
    async def test_settings_change_affects_new_steps_only(self, store, login_flow):
        session = await store.create_session(login_flow)
        before = await store.add_step(session.id, click("#submit-button"))

        await store.update_settings(session.id, {"healing_strategies": ["visual_ai_matching"]})
        after = await store.add_step(session.id, click("#submit-button"))

        steps = await store.get_steps(session.id)
        assert steps[0].fallback_selectors == before.fallback_selectors
        assert after.fallback_selectors == ['[style*="visible"]', '[style*="display: block"]', ':visible']

    @pytest.mark.asyncio
    async def test_invalid_drafts_are_rejected_without_mutation(self, store, login_flow):
        session = await store.create_session(login_flow)

        with pytest.raises(ValidationFailure):
            await store.add_step(session.id, {"type": "click"})
        with pytest.raises(ValidationFailure):
            await store.add_step(session.id, {"type": "hover", "selector": "#menu"})
        with pytest.raises(ValidationFailure):
            await store.add_step(session.id, {"type": "fill", "selector": "#q", "action_params": {"text": "x"}})
        with pytest.raises(ValidationFailure):
            await store.add_step(session.id, {"type": "select", "selector": "#country"})

        assert await store.get_steps(session.id) == []

    @pytest.mark.asyncio
    async def test_navigate_update_must_keep_a_target(self, store, login_flow):
        """Test a navigate step cannot be edited into one with neither url nor selector."""
        session = await store.create_session(login_flow)
        step = await store.add_step(session.id, {
            "type": "navigate", "action_params": {"url": "https://example.com/login"}
        })

        with pytest.raises(ValidationFailure):
            await store.update_step(session.id, step.id, {"selector": "", "action_params": {}})

        steps = await store.get_steps(session.id)
        assert steps[0].action_params == {"url": "https://example.com/login"}

    @pytest.mark.asyncio
    async def test_update_revalidates_params(self, store, login_flow):
        session = await store.create_session(login_flow)
        step = await store.add_step(session.id, {
            "type": "fill", "selector": "#email", "action_params": {"value": "a@example.com"}
        })

        with pytest.raises(ValidationFailure):
            await store.update_step(session.id, step.id, {"action_params": {"expected_text": "nope"}})
        with pytest.raises(ValidationFailure):
            await store.update_step(session.id, step.id, {"selector": ""})

        updated = await store.update_step(session.id, step.id, {"action_params": {"value": "b@example.com"}})
        assert updated.action_params == {"value": "b@example.com"}

    @pytest.mark.asyncio
    async def test_remove_step(self, store, storage, login_flow):
        session = await store.create_session(login_flow)
        keep = await store.add_step(session.id, click("#keep"))
        drop = await store.add_step(session.id, click("#drop"))

        await store.remove_step(session.id, drop.id)

        assert [s.id for s in await store.get_steps(session.id)] == [keep.id]
        assert [s.id for s in storage.get_session_steps(session.id)] == [keep.id]
        with pytest.raises(StepNotFound):
            await store.remove_step(session.id, drop.id)

    @pytest.mark.asyncio
    async def test_order_index_is_never_reused(self, store, login_flow):
        session = await store.create_session(login_flow)
        first = await store.add_step(session.id, click("#a"))
        second = await store.add_step(session.id, click("#b"))

        await store.remove_step(session.id, second.id)
        third = await store.add_step(session.id, click("#c"))

        assert (first.order_index, second.order_index) == (0, 1)
        assert third.order_index == 2

    @pytest.mark.asyncio
    async def test_readers_get_copies(self, store, login_flow):
        session = await store.create_session(login_flow)
        await store.add_step(session.id, click("#a"))

        snapshot = await store.get_session(session.id)
        snapshot.steps.clear()

        assert len(await store.get_steps(session.id)) == 1

    @pytest.mark.asyncio
    async def test_validate_session(self, store, login_flow):
        session = await store.create_session(login_flow)
        empty = await store.validate_session(session.id)
        assert empty.is_valid is False

        await store.add_step(session.id, click("#submit-button"))
        report = await store.validate_session(session.id)

        assert report.is_valid is True
        assert "Consider adding more assertions for better test coverage" in report.warnings


class TestConcurrency:
    """Test per-session serialization of step insertion."""

    @pytest.mark.asyncio
    async def test_interleaved_callers_keep_their_order(self, store, storage, login_flow):
        """Test two concurrent callers each see their own steps in issue order."""
        session = await store.create_session(login_flow)

        async def caller(prefix):
            for i in range(10):
                await store.add_step(session.id, click(f"#{prefix}{i}", f"{prefix}{i}"))

        await asyncio.gather(caller("api"), caller("driver"))

        steps = await store.get_steps(session.id)
        descriptions = [s.description for s in steps]
        assert [d for d in descriptions if d.startswith("api")] == [f"api{i}" for i in range(10)]
        assert [d for d in descriptions if d.startswith("driver")] == [f"driver{i}" for i in range(10)]
        assert [s.order_index for s in steps] == list(range(20))
        assert [s.id for s in storage.get_session_steps(session.id)] == [s.id for s in steps]

    @pytest.mark.asyncio
    async def test_simultaneous_adds_follow_acceptance_order(self, store, login_flow):
        session = await store.create_session(login_flow)

        results = await asyncio.gather(*[
            store.add_step(session.id, click(f"#s{i}", f"step {i}")) for i in range(15)
        ])

        steps = await store.get_steps(session.id)
        assert [s.id for s in steps] == [r.id for r in sorted(results, key=lambda r: r.order_index)]
        assert [s.description for s in steps] == [f"step {i}" for i in range(15)]

    @pytest.mark.asyncio
    async def test_sessions_do_not_block_each_other(self, store, login_flow):
        first = await store.create_session(login_flow)
        second = await store.create_session(login_flow)

        async with store._lock(first.id):
            step = await asyncio.wait_for(store.add_step(second.id, click("#free")), timeout=1)

        assert step.selector == "#free"


class TestDurability:
    """Test hydration, cascade delete and mirror failures."""

    @pytest.mark.asyncio
    async def test_cold_lookup_hydrates_once(self, store, storage, browser_manager, monkeypatch, login_flow):
        session = await store.create_session(login_flow)
        steps = [await store.add_step(session.id, click(f"#s{i}")) for i in range(3)]

        fresh = RecordingSessionStore(storage, NotificationHub(), browser_manager, reconcile_interval=0)
        loader = Mock(wraps=storage.get_session)
        monkeypatch.setattr(storage, "get_session", loader)

        copies = await asyncio.gather(*[fresh.get_session(session.id) for _ in range(5)])
        again = await fresh.get_session(session.id)

        assert loader.call_count == 1
        assert [s.id for s in copies[0].steps] == [s.id for s in steps]
        assert all(s.persisted for s in again.steps)

    @pytest.mark.asyncio
    async def test_hydrated_session_keeps_ordering(self, store, storage, browser_manager, login_flow):
        session = await store.create_session(login_flow)
        await store.add_step(session.id, click("#a"))

        fresh = RecordingSessionStore(storage, NotificationHub(), browser_manager, reconcile_interval=0)
        step = await fresh.add_step(session.id, click("#b"))

        assert step.order_index == 1
        assert [s.id for s in await fresh.list_sessions()] == [session.id]

    @pytest.mark.asyncio
    async def test_delete_cascades(self, store, storage, browser_manager, hub, consumer, login_flow):
        """Test deleting removes the session, its steps and its binding."""
        session = await store.create_session(login_flow)
        hub.join(session.id, consumer)
        await store.add_step(session.id, click("#a"))
        await store.add_step(session.id, click("#b"))

        await store.delete_session(session.id)

        assert storage.get_session(session.id) is None
        assert storage.get_session_steps(session.id) == []
        assert browser_manager.get_session(session.id) is None
        assert consumer.events()[-1] == "session:deleted"
        assert session.id not in store._locks
        with pytest.raises(SessionNotFound):
            await store.get_session(session.id)
        with pytest.raises(SessionNotFound):
            await store.delete_session(session.id)

    @pytest.mark.asyncio
    async def test_delete_recording_session(self, store, login_flow):
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)

        await store.delete_session(session.id)

        assert store.capture.is_attached(session.id) is False
        await store.close()

    @pytest.mark.asyncio
    async def test_failed_mirror_write_succeeds_with_warning(self, store, storage, hub, consumer, monkeypatch, login_flow):
        """Test a durable failure keeps the step, warns, and is repaired by reconciliation."""
        session = await store.create_session(login_flow)
        hub.join(session.id, consumer)
        monkeypatch.setattr(storage, "save_step", Mock(side_effect=OSError("disk full")))

        step = await store.add_step(session.id, click("#submit-button"))

        assert step.persisted is False
        assert ("step", session.id, step.id) in store.mirror.dirty_keys()
        assert "session:warning" in consumer.events()
        assert len(await store.get_steps(session.id)) == 1

        monkeypatch.undo()
        repaired = await store.mirror.reconcile()

        assert repaired == 1
        assert (await store.get_steps(session.id))[0].persisted is True
        assert [s.id for s in storage.get_session_steps(session.id)] == [step.id]

    @pytest.mark.asyncio
    async def test_successful_write_marks_persisted(self, store, login_flow):
        session = await store.create_session(login_flow)

        step = await store.add_step(session.id, click("#a"))

        assert step.persisted is True

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, store, mock_playwright, login_flow):
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)

        await asyncio.gather(store.close(), store.close())
        await store.close()

        mock_playwright.stop.assert_awaited_once()


class TestDriverEvents:
    """Test the driver-event insertion path."""

    @pytest.mark.asyncio
    async def test_events_only_recorded_while_recording(self, store, login_flow):
        session = await store.create_session(login_flow)

        assert await store.record_driver_event(session.id, click("#early")) is None

        await store.start_recording(session.id)
        recorded = await store.record_driver_event(session.id, click("#during"))
        await store.pause_recording(session.id)
        ignored = await store.record_driver_event(session.id, click("#paused"))

        assert recorded.selector == "#during"
        assert ignored is None
        assert [s.selector for s in await store.get_steps(session.id)] == ["", "#during"]

        await store.close()

    @pytest.mark.asyncio
    async def test_event_after_release_is_driver_unavailable(self, store, login_flow):
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)
        await store.stop_recording(session.id)

        with pytest.raises(DriverUnavailable):
            await store.record_driver_event(session.id, click("#late"))

        await store.close()

    @pytest.mark.asyncio
    async def test_console_events_flow_into_steps(self, store, mock_page, login_flow):
        """Test captured page events reach the store in order."""
        session = await store.create_session(login_flow)
        await store.start_recording(session.id)

        handlers = {c.args[0]: c.args[1] for c in mock_page.on.call_args_list}
        console = handlers["console"]
        console(Mock(type="log", text='PLAYWRIGHT_RECORD:{"eventType": "fill", "selector": "#email", "value": "a@b.c"}'))
        console(Mock(type="log", text='PLAYWRIGHT_RECORD:{"eventType": "click", "selector": "#submit-button"}'))
        console(Mock(type="log", text="unrelated log line"))

        await wait_until(lambda: len(store._sessions[session.id].steps) == 3)

        steps = await store.get_steps(session.id)
        assert [s.type for s in steps] == [ActionType.NAVIGATE, ActionType.FILL, ActionType.CLICK]
        assert steps[1].action_params == {"value": "a@b.c"}

        await store.close()


class TestHealStep:
    """Test live healing with the retry ceiling."""

    @pytest.mark.asyncio
    async def test_primary_resolves(self, store, hub, consumer, login_flow):
        session = await store.create_session(login_flow)
        hub.join(session.id, consumer)
        step = await store.add_step(session.id, click("#submit-button"))

        result = await store.heal_step(session.id, step.id)

        assert result.primary_resolved is True
        assert result.confidence == 1.0
        assert consumer.events()[-1] == "step:healed"

    @pytest.mark.asyncio
    async def test_exhaustion_after_retry_ceiling(self, store, mock_page, login_flow):
        """Test nothing resolving raises HealingExhausted after max_retry_attempts passes."""
        session = await store.create_session(login_flow)
        await store.update_settings(session.id, {"max_retry_attempts": 2, "fallback_timeout": 1000})
        step = await store.add_step(session.id, click("#submit-button"))
        locator = mock_page.locator.return_value
        locator.wait_for.side_effect = PlaywrightError("Timeout 1000ms exceeded")

        with pytest.raises(HealingExhausted) as exc_info:
            await store.heal_step(session.id, step.id)

        assert exc_info.value.attempts == 2
        assert locator.wait_for.await_count == 2 * (1 + len(step.fallback_selectors))

    @pytest.mark.asyncio
    async def test_fallback_below_threshold_is_unresolved(self, store, mock_page, login_flow):
        session = await store.create_session(login_flow)
        await store.update_settings(session.id, {"confidence_threshold": 0.9, "max_retry_attempts": 1})
        step = await store.add_step(session.id, click("#submit-button"))

        def locator(selector):
            loc = Mock()
            loc.first = Mock()
            if selector == "#submit-button":
                loc.first.wait_for = AsyncMock(side_effect=PlaywrightError("Timeout"))
            else:
                loc.first.wait_for = AsyncMock(return_value=None)
            return loc

        mock_page.locator = Mock(side_effect=locator)

        with pytest.raises(HealingExhausted):
            await store.heal_step(session.id, step.id)

    @pytest.mark.asyncio
    async def test_heal_without_binding(self, store, browser_manager, login_flow):
        session = await store.create_session(login_flow)
        step = await store.add_step(session.id, click("#submit-button"))
        await browser_manager.close_session(session.id)

        with pytest.raises(DriverUnavailable):
            await store.heal_step(session.id, step.id)
