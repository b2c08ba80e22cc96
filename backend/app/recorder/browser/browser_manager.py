"""
Browser Manager

Owns the Playwright engine pool and one isolated browsing context per
recording session.

Engines are shared per browser type and reference-counted by the
sessions bound to them. Shutdown closes every session context first,
then the engines, then Playwright itself.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from playwright.async_api import async_playwright, Error as PlaywrightError

from models import DEFAULT_USER_AGENT, BrowserType
from ..errors import DriverUnavailable

# Configure logging
logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


@dataclass
class BrowserBinding:
    """Live handle to the context/page used by one session"""
    session_id: str
    browser_type: str
    browser: Any
    context: Any
    page: Any
    is_recording: bool = False


class BrowserManager:
    """
    Reference-counted Playwright engine pool.

    Features:
    - One engine per browser type, launched on first use
    - One context + page per session for isolation
    - Optional video/HAR capture under recordings/<session_id>/
    - Idempotent shutdown that drains sessions before engines
    """

    def __init__(
        self,
        headless: bool = True,
        recordings_dir: str = "recordings",
        record_artifacts: bool = False,
        playwright_factory: Optional[Callable] = None
    ):
        """
        Initialize browser manager.

        Args:
            headless: Launch engines without a visible window
            recordings_dir: Root directory for per-session video/HAR files
            record_artifacts: Capture video and HAR for each context
            playwright_factory: Replacement for async_playwright (tests)
        """
        self.headless = headless
        self.recordings_dir = Path(recordings_dir)
        self.record_artifacts = record_artifacts
        self._playwright_factory = playwright_factory or async_playwright

        self._playwright = None
        self._browsers: Dict[str, Any] = {}
        self._refcounts: Dict[str, int] = {}
        self._bindings: Dict[str, BrowserBinding] = {}
        self._pool_lock = asyncio.Lock()
        self._shutdown_task: Optional[asyncio.Future] = None
        self._closed = False

    # ==================== Engine Pool ====================

    async def _launch_browser(self, browser_type: str):
        if self._playwright is None:
            self._playwright = await self._playwright_factory().start()
            logger.info("Playwright started")

        engine = getattr(self._playwright, browser_type)
        browser = await engine.launch(headless=self.headless, args=LAUNCH_ARGS)
        logger.info(f"Launched {browser_type} engine")
        return browser

    async def _acquire_browser(self, browser_type: str):
        """Get (launching if needed) the engine for a type and take a reference"""
        async with self._pool_lock:
            if self._closed:
                raise DriverUnavailable("Browser manager is shut down")
            browser = self._browsers.get(browser_type)
            if browser is None:
                try:
                    browser = await self._launch_browser(browser_type)
                except PlaywrightError as e:
                    raise DriverUnavailable(f"Failed to launch {browser_type}: {e}") from e
                self._browsers[browser_type] = browser
            self._refcounts[browser_type] = self._refcounts.get(browser_type, 0) + 1
            return browser

    async def _release_browser(self, browser_type: str):
        async with self._pool_lock:
            remaining = max(self._refcounts.get(browser_type, 0) - 1, 0)
            self._refcounts[browser_type] = remaining

    def engine_refcount(self, browser_type: str) -> int:
        return self._refcounts.get(browser_type, 0)

    # ==================== Session Bindings ====================

    def _context_options(self, session_id: str, viewport: Optional[Dict[str, int]], user_agent: Optional[str]):
        viewport = viewport or {"width": 1920, "height": 1080}
        options: Dict[str, Any] = {
            "viewport": viewport,
            "user_agent": user_agent or DEFAULT_USER_AGENT,
        }
        if self.record_artifacts:
            session_dir = self.recordings_dir / session_id
            options["record_video_dir"] = str(session_dir / "videos")
            options["record_video_size"] = viewport
            options["record_har_path"] = str(session_dir / "network.har")
        return options

    async def create_session(
        self,
        session_id: str,
        browser_type: str = BrowserType.CHROMIUM.value,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None
    ) -> BrowserBinding:
        """
        Bind a session to a fresh context and page.

        Returns:
            The binding (existing one if the session is already bound)
        """
        if self._closed:
            raise DriverUnavailable("Browser manager is shut down")

        existing = self._bindings.get(session_id)
        if existing:
            return existing

        browser = await self._acquire_browser(browser_type)
        context = None
        try:
            context = await browser.new_context(**self._context_options(session_id, viewport, user_agent))
            page = await context.new_page()
        except PlaywrightError as e:
            await self._discard_context(session_id, browser_type, context)
            raise DriverUnavailable(f"Failed to create browser context for {session_id}: {e}") from e

        # Re-checked after the awaits: shutdown or a concurrent bind may have won
        if self._closed:
            await self._discard_context(session_id, browser_type, context)
            raise DriverUnavailable("Browser manager is shut down")
        existing = self._bindings.get(session_id)
        if existing:
            await self._discard_context(session_id, browser_type, context)
            return existing

        page.on("console", lambda msg: logger.debug(f"Browser Console [{session_id}]: {msg.text}"))
        page.on("pageerror", lambda error: logger.error(f"Browser Error [{session_id}]: {error}"))

        binding = BrowserBinding(
            session_id=session_id,
            browser_type=browser_type,
            browser=browser,
            context=context,
            page=page
        )
        self._bindings[session_id] = binding
        logger.info(f"Created browser session: {session_id}")
        return binding

    async def _discard_context(self, session_id: str, browser_type: str, context):
        """Close a context that never became a binding and give back its engine reference"""
        try:
            if context is not None:
                await context.close()
        except PlaywrightError as e:
            logger.error(f"Error discarding context for {session_id}: {e}")
        finally:
            await self._release_browser(browser_type)

    def get_session(self, session_id: str) -> Optional[BrowserBinding]:
        return self._bindings.get(session_id)

    async def close_session(self, session_id: str) -> bool:
        """Close a session's context and release its engine reference"""
        binding = self._bindings.pop(session_id, None)
        if binding is None:
            return False

        binding.is_recording = False
        try:
            await binding.context.close()
            logger.info(f"Closed browser session: {session_id}")
        except PlaywrightError as e:
            logger.error(f"Error closing session {session_id}: {e}")
        finally:
            await self._release_browser(binding.browser_type)
        return True

    def get_active_session_count(self) -> int:
        return len(self._bindings)

    # ==================== Shutdown ====================

    async def shutdown(self):
        """Drain every session, then close engines; safe to call repeatedly"""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self):
        self._closed = True
        logger.info("Closing all browser sessions...")

        await asyncio.gather(*(self.close_session(sid) for sid in list(self._bindings)))

        async with self._pool_lock:
            for browser_type, browser in list(self._browsers.items()):
                if self._refcounts.get(browser_type, 0):
                    logger.warning(
                        f"{browser_type} engine still referenced by "
                        f"{self._refcounts[browser_type]} session(s) at shutdown"
                    )
                try:
                    await browser.close()
                except PlaywrightError as e:
                    logger.error(f"Error closing {browser_type} engine: {e}")
            self._browsers.clear()
            self._refcounts.clear()

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

        logger.info("All browser sessions closed")
