"""
Event Capture

Observes a live page and turns user interactions into candidate steps.

A client-side script logs PLAYWRIGHT_RECORD:{json} on click, change
and submit; console and main-frame navigation listeners convert those
into step drafts and push them onto a bounded per-session queue. One
consumer task per session drains the queue in order into the store,
so driver events share the store's serialized mutation path with the
request/response API.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from models import ActionType, utc_now
from ..errors import RecorderError

# Configure logging
logger = logging.getLogger(__name__)

RECORD_PREFIX = "PLAYWRIGHT_RECORD:"

CAPTURE_SCRIPT = """
(() => {
  const PREFIX = 'PLAYWRIGHT_RECORD:';

  const generateSelector = (element) => {
    // Priority: data-testid > aria-label > id > class > tag
    if (!element || !element.tagName) return '';
    if (element.getAttribute('data-testid')) {
      return `[data-testid="${element.getAttribute('data-testid')}"]`;
    }
    if (element.getAttribute('aria-label')) {
      return `[aria-label="${element.getAttribute('aria-label')}"]`;
    }
    if (element.id) {
      return `#${element.id}`;
    }
    if (typeof element.className === 'string') {
      const classes = element.className.split(' ').filter(c => c.length > 0);
      if (classes.length > 0) {
        return `.${classes[0]}`;
      }
    }
    return element.tagName.toLowerCase();
  };

  const recordEvent = (eventType, element, value) => {
    console.log(PREFIX + JSON.stringify({
      eventType,
      selector: generateSelector(element),
      value,
      timestamp: Date.now()
    }));
  };

  document.addEventListener('click', (e) => recordEvent('click', e.target), true);

  document.addEventListener('change', (e) => {
    const target = e.target;
    if (!target || !target.tagName) return;
    if (target.tagName.toLowerCase() === 'select') {
      recordEvent('select', target, target.value);
    } else if (target.type !== 'checkbox' && target.type !== 'radio') {
      recordEvent('fill', target, target.value);
    }
  }, true);

  document.addEventListener('submit', (e) => recordEvent('submit', e.target), true);
})();
"""


def event_to_draft(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Map a client-side record event to a step draft, or None to ignore it"""
    event_type = event.get("eventType")
    selector = event.get("selector") or ""
    value = event.get("value")

    if not selector:
        return None

    if event_type == "click":
        return {
            "type": ActionType.CLICK.value,
            "selector": selector,
            "description": f"Click on {selector}",
        }
    if event_type == "fill":
        return {
            "type": ActionType.FILL.value,
            "selector": selector,
            "action_params": {"value": value or ""},
            "description": f"Fill \"{value or ''}\" in {selector}",
        }
    if event_type == "select":
        return {
            "type": ActionType.SELECT.value,
            "selector": selector,
            "action_params": {"value": value or ""},
            "description": f"Select \"{value or ''}\" in {selector}",
        }
    if event_type == "submit":
        return {
            "type": ActionType.CLICK.value,
            "selector": selector,
            "description": f"Submit form {selector}",
        }
    return None


def navigation_to_draft(url: str) -> Optional[Dict[str, Any]]:
    if not url or url == "about:blank":
        return None
    return {
        "type": ActionType.NAVIGATE.value,
        "selector": "",
        "action_params": {"url": url},
        "description": f"Navigate to {url}",
    }


@dataclass
class CandidateStep:
    """A step draft observed on the page, not yet accepted by the store"""
    session_id: str
    draft: Dict[str, Any]
    observed_at: datetime = field(default_factory=utc_now)


@dataclass
class _Channel:
    queue: asyncio.Queue
    consumer: asyncio.Task
    page: Any
    handlers: Dict[str, Callable]


class EventCapture:
    """
    Per-session capture channels feeding the recording store.

    Events are only enqueued while the binding is recording, so pausing
    drops interactions at the source.
    """

    def __init__(
        self,
        sink: Callable[[str, Dict[str, Any]], Awaitable[Any]],
        on_error: Optional[Callable[[str, str], Awaitable[Any]]] = None,
        queue_size: int = 256
    ):
        """
        Args:
            sink: Coroutine accepting (session_id, draft); the store's driver-event entry
            on_error: Coroutine reporting (session_id, message) for driver-side failures
            queue_size: Bound of each session's candidate queue
        """
        self._sink = sink
        self._on_error = on_error
        self.queue_size = queue_size
        self._channels: Dict[str, _Channel] = {}

    def is_attached(self, session_id: str) -> bool:
        return session_id in self._channels

    async def attach(self, session_id: str, binding):
        """Install the capture script and listeners on a session's page"""
        if session_id in self._channels:
            return

        page = binding.page
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)

        def on_console(msg):
            if msg.type != "log" or not msg.text.startswith(RECORD_PREFIX):
                return
            if not binding.is_recording:
                return
            try:
                event = json.loads(msg.text[len(RECORD_PREFIX):])
            except ValueError as e:
                logger.error(f"Error parsing recorded event: {e}")
                return
            draft = event_to_draft(event)
            if draft:
                self.submit(session_id, draft)

        def on_navigated(frame):
            if frame != page.main_frame or not binding.is_recording:
                return
            draft = navigation_to_draft(frame.url)
            if draft:
                self.submit(session_id, draft)

        handlers = {"console": on_console, "framenavigated": on_navigated}

        await page.add_init_script(script=CAPTURE_SCRIPT)
        for event_name, handler in handlers.items():
            page.on(event_name, handler)

        consumer = asyncio.create_task(self._consume(session_id, queue))
        self._channels[session_id] = _Channel(queue=queue, consumer=consumer, page=page, handlers=handlers)
        logger.info(f"Event capture attached for session: {session_id}")

    def submit(self, session_id: str, draft: Dict[str, Any]) -> bool:
        """Enqueue a candidate step; returns False if it was dropped"""
        channel = self._channels.get(session_id)
        if channel is None:
            return False
        try:
            channel.queue.put_nowait(CandidateStep(session_id=session_id, draft=draft))
            return True
        except asyncio.QueueFull:
            message = f"Capture queue full ({self.queue_size}), dropped {draft.get('type')} event"
            logger.warning(f"[{session_id}] {message}")
            self._report(session_id, message)
            return False

    def _report(self, session_id: str, message: str):
        if self._on_error:
            asyncio.ensure_future(self._on_error(session_id, message))

    async def _consume(self, session_id: str, queue: asyncio.Queue):
        while True:
            candidate = await queue.get()
            # Shielded so detaching never cancels an insertion halfway
            insertion = asyncio.ensure_future(self._sink(session_id, candidate.draft))
            insertion.add_done_callback(_retrieve_outcome)
            try:
                await asyncio.shield(insertion)
            except RecorderError as e:
                logger.warning(f"Driver event rejected for {session_id}: {e.detail}")
                self._report(session_id, e.detail)
            finally:
                queue.task_done()

    async def detach(self, session_id: str):
        """Stop capturing for a session; queued but unconsumed events are dropped"""
        channel = self._channels.pop(session_id, None)
        if channel is None:
            return

        for event_name, handler in channel.handlers.items():
            channel.page.remove_listener(event_name, handler)

        channel.consumer.cancel()
        try:
            await channel.consumer
        except asyncio.CancelledError:
            pass
        logger.info(f"Event capture detached for session: {session_id}")

    async def close_all(self):
        for session_id in list(self._channels):
            await self.detach(session_id)


def _retrieve_outcome(task: asyncio.Future):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Driver event insertion finished with {type(error).__name__}: {error}")
