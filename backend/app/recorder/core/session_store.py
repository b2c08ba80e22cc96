"""
Recording Session Store

Owns the authoritative in-memory sessions and mediates every mutation.

Features:
- Lifecycle state machine: created -> recording <-> paused -> stopped -> completed
- One asyncio.Lock per session; the lock covers the in-memory change only
- Durable writes are queued under the lock (acceptance order) and awaited outside it
- Read-through lookup with a single shared hydration per session id
- Driver events and API calls share the same serialized insertion path
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from playwright.async_api import Error as PlaywrightError

from models import (
    ActionType,
    AddStepRequest,
    CreateSessionRequest,
    RecordedStep,
    RecordingSession,
    SELECTOR_REQUIRED,
    SessionMetadata,
    SessionSettings,
    SessionStatus,
    StepValidationReport,
    UpdateSessionRequest,
    UpdateSettingsRequest,
    UpdateStepRequest,
    BrowserType,
    utc_now,
    validate_action_params,
)
from storage import Storage
from ..browser import BrowserManager, EventCapture
from ..errors import (
    DriverUnavailable,
    DurableWriteFailure,
    HealingExhausted,
    InvalidTransition,
    SessionNotFound,
    StepNotFound,
    ValidationFailure,
    from_pydantic_errors,
)
from ..healing import SelfHealingEngine, HealingResult
from ..notifications import NotificationHub
from .durable_mirror import DurableMirror
from .step_validator import validate_session_steps

# Configure logging
logger = logging.getLogger(__name__)

RequestModel = TypeVar("RequestModel", bound=BaseModel)


def _same_state(left: RecordedStep, right: RecordedStep) -> bool:
    return left.model_dump(exclude={"persisted"}) == right.model_dump(exclude={"persisted"})


class RecordingSessionStore:
    """
    Single point of truth for recording sessions and their steps.

    Critical sections never await, so readers on the event loop always
    observe a state that some mutation fully produced.
    """

    def __init__(
        self,
        storage: Storage,
        hub: NotificationHub,
        browser_manager: BrowserManager,
        healing_engine: Optional[SelfHealingEngine] = None,
        capture_queue_size: int = 256,
        reconcile_interval: float = 5.0,
        default_browser: str = BrowserType.CHROMIUM.value
    ):
        self.storage = storage
        self.hub = hub
        self.browser_manager = browser_manager
        self.healing_engine = healing_engine or SelfHealingEngine()
        self.default_browser = BrowserType(default_browser)

        self.mirror = DurableMirror(reconcile_interval=reconcile_interval)
        self.mirror.set_resolver(self._current_durable_state)
        self.capture = EventCapture(
            sink=self.record_driver_event,
            on_error=self._report_driver_error,
            queue_size=capture_queue_size
        )

        self._sessions: Dict[str, RecordingSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._hydrations: Dict[str, asyncio.Future] = {}
        self._order_counters: Dict[str, int] = {}
        self._tombstones: Set[str] = set()
        self._starting: Set[str] = set()
        self._close_task: Optional[asyncio.Future] = None

    # ==================== Lifecycle ====================

    def start(self):
        """Begin background reconciliation of failed durable writes"""
        self.mirror.start()
        logger.info("Recording session store started")

    async def close(self):
        """Detach capture, drain driver bindings, flush durable writes; idempotent"""
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self):
        await self.capture.close_all()
        await self.browser_manager.shutdown()
        await self.mirror.close()
        dirty = self.mirror.dirty_keys()
        if dirty:
            logger.error(f"{len(dirty)} record(s) could not be written to durable storage at shutdown")
        logger.info("Recording session store closed")

    # ==================== Internals ====================

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    @staticmethod
    def _coerce(model_cls: Type[RequestModel], payload: Union[RequestModel, Dict[str, Any]]) -> RequestModel:
        if isinstance(payload, model_cls):
            return payload
        try:
            return model_cls.model_validate(payload or {})
        except ValidationError as e:
            raise from_pydantic_errors(f"Invalid {model_cls.__name__}", e.errors()) from e

    async def _load(self, session_id: str) -> RecordingSession:
        """Memory first, then one shared hydration from durable storage"""
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        if session_id in self._tombstones:
            raise SessionNotFound(session_id)

        hydration = self._hydrations.get(session_id)
        if hydration is None:
            hydration = asyncio.ensure_future(self._hydrate(session_id))
            self._hydrations[session_id] = hydration

        session = await asyncio.shield(hydration)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def _hydrate(self, session_id: str) -> Optional[RecordingSession]:
        try:
            session = await self.mirror.run(self.storage.get_session, session_id)
            if session is None or session_id in self._tombstones:
                return None
            session = self._sessions.setdefault(session_id, session)
            self._order_counters.setdefault(session_id, session.next_order_index())
            logger.info(f"Hydrated session {session_id} from durable storage")
            return session
        finally:
            self._hydrations.pop(session_id, None)

    def _require_live(self, session_id: str) -> RecordingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    @staticmethod
    def _header_snapshot(session: RecordingSession) -> RecordingSession:
        return session.model_copy(update={"steps": []}, deep=True)

    # ==================== Durable Mirror ====================

    def _submit_session(self, session_id: str, header: RecordingSession) -> asyncio.Future:
        return self.mirror.submit(("session", session_id), self.storage.save_session, header)

    def _submit_step(self, session_id: str, snapshot: RecordedStep) -> asyncio.Future:
        return self.mirror.submit(
            ("step", session_id, snapshot.id),
            self.storage.save_step, session_id, snapshot,
            on_success=lambda: self._after_step_write(session_id, snapshot)
        )

    def _submit_step_delete(self, session_id: str, step_id: str) -> asyncio.Future:
        return self.mirror.submit(("step", session_id, step_id), self.storage.delete_step, session_id, step_id)

    def _after_step_write(self, session_id: str, snapshot: RecordedStep):
        if session_id in self._tombstones:
            # The session was deleted while this write was queued
            self.mirror.mark_dirty(("session", session_id))
            return
        session = self._sessions.get(session_id)
        step = session.get_step(snapshot.id) if session else None
        if step is not None and _same_state(step, snapshot):
            step.persisted = True

    def _current_durable_state(self, key):
        """Resolver used by reconciliation: write whatever memory holds now"""
        session_id = key[1]
        session = self._sessions.get(session_id)

        if key[0] == "session":
            if session is None:
                return self.storage.delete_session, (session_id,), None
            return self.storage.save_session, (self._header_snapshot(session),), None

        step_id = key[2]
        step = session.get_step(step_id) if session else None
        if step is None:
            return self.storage.delete_step, (session_id, step_id), None
        snapshot = step.model_copy(deep=True)
        return (
            self.storage.save_step,
            (session_id, snapshot),
            lambda: self._after_step_write(session_id, snapshot)
        )

    async def _await_writes(self, session_id: str, *writes: asyncio.Future) -> List[DurableWriteFailure]:
        failures = [failure for failure in [await write for write in writes] if failure is not None]
        for failure in failures:
            await self.hub.broadcast(session_id, "session:warning", {
                "error": failure.category,
                "detail": failure.detail
            })
        return failures

    async def _report_driver_error(self, session_id: str, message: str):
        await self.hub.broadcast(session_id, "session:error", {"error": message})

    # ==================== Session Operations ====================

    async def create_session(self, payload: Union[CreateSessionRequest, Dict[str, Any]]) -> RecordingSession:
        request = self._coerce(CreateSessionRequest, payload)

        settings = SessionSettings()
        if request.settings is not None:
            settings = settings.model_copy(update=request.settings.model_dump(exclude_none=True))

        session = RecordingSession(
            id=str(uuid.uuid4()),
            test_name=request.test_name,
            target_url=request.target_url,
            settings=settings,
            metadata=SessionMetadata(browser=request.browser or self.default_browser),
        )

        async with self._lock(session.id):
            self._sessions[session.id] = session
            self._order_counters[session.id] = 0
            header = self._header_snapshot(session)
            write = self._submit_session(session.id, header)
        await self._await_writes(session.id, write)
        logger.info(f"Created test session: {session.id} - {session.test_name}")

        try:
            await self._bind_driver(session)
        except DriverUnavailable as e:
            logger.warning(f"Session {session.id} has no browser binding yet: {e.detail}")

        return await self.get_session(session.id)

    async def _bind_driver(self, session: RecordingSession):
        binding = await self.browser_manager.create_session(
            session.id,
            browser_type=session.metadata.browser.value,
            viewport=session.metadata.viewport.model_dump(),
            user_agent=session.metadata.user_agent
        )
        # The session may have been deleted while the context was being created
        if session.id not in self._sessions:
            await self.browser_manager.close_session(session.id)
            raise SessionNotFound(session.id)
        return binding

    async def attach_driver(self, session_id: str) -> RecordingSession:
        """(Re)bind a browser context to a session that has not started recording"""
        session = await self._load(session_id)
        if session.status != SessionStatus.CREATED:
            raise InvalidTransition(session_id, session.status.value, "attach a driver to")
        if self.browser_manager.get_session(session_id) is None:
            await self._bind_driver(session)
        return await self.get_session(session_id)

    async def get_session(self, session_id: str) -> RecordingSession:
        """Consistent deep copy of a session (hydrating on a cold miss)"""
        session = await self._load(session_id)
        return session.model_copy(deep=True)

    async def get_steps(self, session_id: str) -> List[RecordedStep]:
        session = await self._load(session_id)
        return [step.model_copy(deep=True) for step in session.steps]

    async def list_sessions(self) -> List[RecordingSession]:
        """All sessions known in memory or durably, newest first"""
        durable_ids = await self.mirror.run(self.storage.list_session_ids)
        for session_id in durable_ids:
            if session_id in self._sessions or session_id in self._tombstones:
                continue
            try:
                await self._load(session_id)
            except SessionNotFound:
                continue

        sessions = [session.model_copy(deep=True) for session in self._sessions.values()]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    def get_active_session_count(self) -> int:
        return sum(
            1 for session in self._sessions.values()
            if session.status in (SessionStatus.RECORDING, SessionStatus.PAUSED)
        )

    def get_loaded_session_count(self) -> int:
        return len(self._sessions)

    async def update_session(self, session_id: str, payload: Union[UpdateSessionRequest, Dict[str, Any]]) -> RecordingSession:
        request = self._coerce(UpdateSessionRequest, payload)
        changes = request.model_dump(exclude_none=True)
        if not changes:
            raise ValidationFailure("No session fields to update")

        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            for field_name, value in changes.items():
                setattr(session, field_name, value)
            session.updated_at = utc_now()
            snapshot = session.model_copy(deep=True)
            write = self._submit_session(session_id, self._header_snapshot(session))

        await self._await_writes(session_id, write)
        await self.hub.broadcast(session_id, "session:updated", changes)
        return snapshot

    async def update_settings(
        self,
        session_id: str,
        payload: Union[UpdateSettingsRequest, Dict[str, Any]]
    ) -> SessionSettings:
        """Merge a partial settings delta; existing step fallbacks are left untouched"""
        request = self._coerce(UpdateSettingsRequest, payload)
        changes = request.model_dump(exclude_none=True)

        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            session.settings = session.settings.model_copy(update=changes)
            session.updated_at = utc_now()
            settings = session.settings.model_copy(deep=True)
            write = self._submit_session(session_id, self._header_snapshot(session))

        await self._await_writes(session_id, write)
        await self.hub.broadcast(session_id, "settings:updated", settings.model_dump(mode="json"))
        logger.info(f"Updated settings for session: {session_id}")
        return settings

    async def delete_session(self, session_id: str):
        """Force-delete from any state, releasing the driver binding"""
        await self._load(session_id)
        async with self._lock(session_id):
            session = self._sessions.pop(session_id, None)
            if session is None:
                raise SessionNotFound(session_id)
            self._tombstones.add(session_id)
            self._order_counters.pop(session_id, None)
            write = self.mirror.submit(("session", session_id), self.storage.delete_session, session_id)

        await self.capture.detach(session_id)
        await self.browser_manager.close_session(session_id)
        await self._await_writes(session_id, write)
        await self.hub.broadcast(session_id, "session:deleted", {"session_id": session_id})
        self.hub.drop_topic(session_id)
        self._locks.pop(session_id, None)
        logger.info(f"Deleted session: {session_id}")

    # ==================== State Machine ====================

    async def start_recording(self, session_id: str) -> RecordingSession:
        """
        created -> recording.

        Capture is attached and the page navigated outside the lock; the
        status only flips once both succeeded and the binding is still the
        one that was checked.
        """
        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            if session_id in self._starting:
                raise InvalidTransition(session_id, "starting", "start")
            if session.status != SessionStatus.CREATED:
                raise InvalidTransition(session_id, session.status.value, "start")
            binding = self.browser_manager.get_session(session_id)
            if binding is None:
                raise DriverUnavailable(f"Browser session not found: {session_id}")
            self._starting.add(session_id)
            target_url = session.target_url

        try:
            try:
                await self.capture.attach(session_id, binding)
                await binding.page.goto(target_url)
            except PlaywrightError as e:
                await self.capture.detach(session_id)
                raise DriverUnavailable(f"Failed to navigate to {target_url}: {e}") from e

            async with self._lock(session_id):
                session = self._sessions.get(session_id)
                if session is None or self.browser_manager.get_session(session_id) is not binding:
                    released = True
                else:
                    released = False
                    session.status = SessionStatus.RECORDING
                    session.updated_at = utc_now()
                    binding.is_recording = True

                    writes = []
                    initial = None
                    if not session.steps:
                        initial = self._append(session, AddStepRequest(
                            type=ActionType.NAVIGATE,
                            action_params={"url": target_url}
                        ))
                        writes.append(self._submit_step(session_id, initial.model_copy(deep=True)))
                    writes.append(self._submit_session(session_id, self._header_snapshot(session)))
                    snapshot = session.model_copy(deep=True)
        finally:
            self._starting.discard(session_id)

        if released:
            await self.capture.detach(session_id)
            raise DriverUnavailable(f"Browser session for {session_id} was released while starting")

        await self._await_writes(session_id, *writes)
        await self.hub.broadcast(session_id, "recording:started", {
            "status": SessionStatus.RECORDING.value,
            "target_url": target_url
        })
        if initial is not None:
            await self.hub.broadcast(session_id, "step:recorded", snapshot.get_step(initial.id).model_dump(mode="json"))
        logger.info(f"Started recording for session: {session_id}")
        return snapshot

    async def _transition(
        self,
        session_id: str,
        allowed: Set[SessionStatus],
        target: SessionStatus,
        action: str,
        event: str
    ) -> RecordingSession:
        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            if session.status not in allowed:
                raise InvalidTransition(session_id, session.status.value, action)
            session.status = target
            session.updated_at = utc_now()
            binding = self.browser_manager.get_session(session_id)
            if binding is not None:
                binding.is_recording = target == SessionStatus.RECORDING
            snapshot = session.model_copy(deep=True)
            write = self._submit_session(session_id, self._header_snapshot(session))

        await self._await_writes(session_id, write)
        await self.hub.broadcast(session_id, event, {"status": target.value})
        logger.info(f"Session {session_id} is now {target.value}")
        return snapshot

    async def pause_recording(self, session_id: str) -> RecordingSession:
        return await self._transition(
            session_id, {SessionStatus.RECORDING}, SessionStatus.PAUSED, "pause", "recording:paused"
        )

    async def resume_recording(self, session_id: str) -> RecordingSession:
        return await self._transition(
            session_id, {SessionStatus.PAUSED}, SessionStatus.RECORDING, "resume", "recording:resumed"
        )

    async def complete_session(self, session_id: str) -> RecordingSession:
        return await self._transition(
            session_id, {SessionStatus.STOPPED}, SessionStatus.COMPLETED, "complete", "session:completed"
        )

    async def stop_recording(self, session_id: str) -> RecordingSession:
        """recording|paused -> stopped; stopping a stopped session is a no-op"""
        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            if session.status == SessionStatus.STOPPED:
                return session.model_copy(deep=True)
            if session.status not in (SessionStatus.RECORDING, SessionStatus.PAUSED):
                raise InvalidTransition(session_id, session.status.value, "stop")
            session.status = SessionStatus.STOPPED
            session.updated_at = utc_now()
            binding = self.browser_manager.get_session(session_id)
            if binding is not None:
                binding.is_recording = False
            snapshot = session.model_copy(deep=True)
            write = self._submit_session(session_id, self._header_snapshot(session))

        await self.capture.detach(session_id)
        await self.browser_manager.close_session(session_id)
        await self._await_writes(session_id, write)
        await self.hub.broadcast(session_id, "recording:ended", {"status": SessionStatus.STOPPED.value})
        logger.info(f"Stopped recording for session: {session_id}")
        return snapshot

    # ==================== Steps ====================

    def _fallbacks_for(self, session: RecordingSession, action: ActionType, selector: str) -> List[str]:
        # Navigate selectors hold a URL, not a locator
        if not selector or action == ActionType.NAVIGATE:
            return []
        return self.healing_engine.generate_fallbacks(selector, action, session.settings.healing_strategies)

    def _append(self, session: RecordingSession, request: AddStepRequest) -> RecordedStep:
        """Assign id, timestamp and order index and append; caller holds the lock"""
        order_index = max(self._order_counters.get(session.id, 0), session.next_order_index())
        self._order_counters[session.id] = order_index + 1

        step = RecordedStep(
            id=str(uuid.uuid4()),
            type=request.type,
            selector=request.selector,
            action_params=dict(request.action_params),
            description=request.description,
            fallback_selectors=self._fallbacks_for(session, request.type, request.selector),
            screenshot=request.screenshot,
            metadata=request.metadata,
            order_index=order_index,
        )
        session.steps.append(step)
        session.updated_at = step.timestamp
        return step

    async def add_step(
        self,
        session_id: str,
        payload: Union[AddStepRequest, Dict[str, Any]],
        require_driver: bool = False
    ) -> RecordedStep:
        """
        Validate and append one step.

        Args:
            session_id: Owning session
            payload: Step draft (type, selector, action_params, ...)
            require_driver: Fail with DriverUnavailable if the binding is gone

        Returns:
            The materialized step
        """
        request = self._coerce(AddStepRequest, payload)
        return await self._insert(session_id, request, require_driver=require_driver, only_while_recording=False)

    async def record_driver_event(self, session_id: str, draft: Dict[str, Any]) -> Optional[RecordedStep]:
        """Driver-path insertion; events outside the recording state are ignored"""
        request = self._coerce(AddStepRequest, draft)
        return await self._insert(session_id, request, require_driver=True, only_while_recording=True)

    async def _insert(
        self,
        session_id: str,
        request: AddStepRequest,
        require_driver: bool,
        only_while_recording: bool
    ) -> Optional[RecordedStep]:
        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            if require_driver and self.browser_manager.get_session(session_id) is None:
                raise DriverUnavailable(f"Browser session for {session_id} is no longer available")
            if only_while_recording and session.status != SessionStatus.RECORDING:
                logger.debug(f"Ignoring driver event for {session_id} while {session.status.value}")
                return None

            step = self._append(session, request)
            snapshot = step.model_copy(deep=True)
            step_write = self._submit_step(session_id, snapshot)
            header_write = self._submit_session(session_id, self._header_snapshot(session))

        await self._await_writes(session_id, step_write, header_write)
        materialized = self._step_copy(session_id, snapshot)
        await self.hub.broadcast(session_id, "step:recorded", materialized.model_dump(mode="json"))
        logger.info(f"Added step to session {session_id}: {materialized.type.value}")
        return materialized

    def _step_copy(self, session_id: str, fallback: RecordedStep) -> RecordedStep:
        session = self._sessions.get(session_id)
        step = session.get_step(fallback.id) if session else None
        return step.model_copy(deep=True) if step is not None else fallback

    async def update_step(
        self,
        session_id: str,
        step_id: str,
        payload: Union[UpdateStepRequest, Dict[str, Any]]
    ) -> RecordedStep:
        """
        Partially update a step.

        action_params are replaced as a whole and re-validated against the
        step's kind. Fallbacks are recomputed only when the selector changes.
        """
        request = self._coerce(UpdateStepRequest, payload)
        changes = request.model_dump(exclude_unset=True)

        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            step = session.get_step(step_id)
            if step is None:
                raise StepNotFound(session_id, step_id)

            selector = changes.get("selector", step.selector)
            if selector is None:
                selector = ""
            params = step.action_params
            if changes.get("action_params") is not None:
                try:
                    params = validate_action_params(step.type, changes["action_params"])
                except ValidationError as e:
                    raise from_pydantic_errors("Invalid action_params", e.errors()) from e
            if step.type in SELECTOR_REQUIRED and not selector.strip():
                raise ValidationFailure(f"selector is required for {step.type.value} steps")
            if step.type == ActionType.NAVIGATE and not (params.get("url") or selector):
                raise ValidationFailure("navigate steps need action_params.url or a selector")

            if selector != step.selector:
                step.fallback_selectors = self._fallbacks_for(session, step.type, selector)
                step.selector = selector
            step.action_params = params
            if changes.get("description"):
                step.description = changes["description"]
            if "screenshot" in changes:
                step.screenshot = changes["screenshot"]
            if "metadata" in changes:
                step.metadata = changes["metadata"]

            step.persisted = False
            session.updated_at = utc_now()
            snapshot = step.model_copy(deep=True)
            step_write = self._submit_step(session_id, snapshot)
            header_write = self._submit_session(session_id, self._header_snapshot(session))

        await self._await_writes(session_id, step_write, header_write)
        updated = self._step_copy(session_id, snapshot)
        await self.hub.broadcast(session_id, "step:updated", updated.model_dump(mode="json"))
        logger.info(f"Updated step {step_id} in session {session_id}")
        return updated

    async def remove_step(self, session_id: str, step_id: str):
        await self._load(session_id)
        async with self._lock(session_id):
            session = self._require_live(session_id)
            step = session.get_step(step_id)
            if step is None:
                raise StepNotFound(session_id, step_id)
            session.steps.remove(step)
            session.updated_at = utc_now()
            step_write = self._submit_step_delete(session_id, step_id)
            header_write = self._submit_session(session_id, self._header_snapshot(session))

        await self._await_writes(session_id, step_write, header_write)
        await self.hub.broadcast(session_id, "step:removed", {"step_id": step_id})
        logger.info(f"Removed step {step_id} from session {session_id}")

    # ==================== Healing & Validation ====================

    async def heal_step(self, session_id: str, step_id: str) -> HealingResult:
        """
        Re-resolve a step's locator on the session's live page.

        Each attempt tries the primary selector then every fallback; results
        under the session's confidence threshold count as unresolved.
        """
        session = await self._load(session_id)
        step = session.get_step(step_id)
        if step is None:
            raise StepNotFound(session_id, step_id)
        binding = self.browser_manager.get_session(session_id)
        if binding is None:
            raise DriverUnavailable(f"Browser session not found: {session_id}")

        settings = session.settings.model_copy(deep=True)
        selector = step.selector
        fallbacks = list(step.fallback_selectors)

        for attempt in range(1, settings.max_retry_attempts + 1):
            result = await self.healing_engine.resolve(selector, fallbacks, binding.page, settings.fallback_timeout)
            if result.confidence > 0 and result.confidence >= settings.confidence_threshold:
                logger.info(
                    f"Resolved step {step_id} on attempt {attempt}: "
                    f"{result.resolved_selector} (confidence {result.confidence})"
                )
                await self.hub.broadcast(session_id, "step:healed", {"step_id": step_id, **result.to_dict()})
                return result
            logger.warning(f"Healing attempt {attempt}/{settings.max_retry_attempts} failed for step {step_id}")

        raise HealingExhausted(selector, settings.max_retry_attempts)

    async def validate_session(self, session_id: str) -> StepValidationReport:
        session = await self.get_session(session_id)
        return validate_session_steps(session)
