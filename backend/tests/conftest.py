"""
Pytest configuration and shared fixtures for the recorder tests.
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import Mock, AsyncMock
from typing import Any, Dict, List

# Add backend app to path
sys.path.insert(0, str(Path(__file__).parent.parent / "app"))

from storage import Storage
from recorder.browser import BrowserManager
from recorder.core import RecordingSessionStore
from recorder.notifications import NotificationHub


# ==================== Mock Page Fixture ====================

@pytest.fixture
def mock_page():
    """Create a mock Playwright page object."""
    page = AsyncMock()

    # Basic properties
    page.url = "https://example.com/test"
    page.main_frame = Mock()
    page.main_frame.url = "https://example.com/test"

    # Navigation
    page.goto = AsyncMock(return_value=None)
    page.add_init_script = AsyncMock(return_value=None)

    # Event listeners are synchronous in Playwright
    page.on = Mock()
    page.remove_listener = Mock()

    # Locators
    mock_locator = Mock()
    mock_locator.first = mock_locator
    mock_locator.wait_for = AsyncMock()
    mock_locator.click = AsyncMock()
    mock_locator.fill = AsyncMock()
    page.locator = Mock(return_value=mock_locator)

    # Screenshot
    page.screenshot = AsyncMock(return_value=b"fake_screenshot_data")

    return page


# ==================== Mock Browser Fixture ====================

@pytest.fixture
def mock_browser(mock_page):
    """Create a mock Playwright browser object."""
    browser = AsyncMock()
    context = AsyncMock()

    context.new_page = AsyncMock(return_value=mock_page)
    context.close = AsyncMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    return browser


@pytest.fixture
def mock_playwright(mock_browser):
    """Create a mock Playwright driver with all three engine types."""
    playwright = Mock()
    for engine in ("chromium", "firefox", "webkit"):
        getattr(playwright, engine).launch = AsyncMock(return_value=mock_browser)
    playwright.stop = AsyncMock()
    return playwright


@pytest.fixture
def playwright_factory(mock_playwright):
    """Stand-in for async_playwright(): factory().start() returns the mock driver."""
    starter = Mock()
    starter.start = AsyncMock(return_value=mock_playwright)
    return Mock(return_value=starter)


# ==================== Recorder Fixtures ====================

@pytest.fixture
def storage(tmp_path):
    """File storage rooted in a temporary directory."""
    return Storage(data_dir=str(tmp_path / "data"))


@pytest.fixture
def hub():
    return NotificationHub()


@pytest.fixture
def browser_manager(playwright_factory, tmp_path):
    return BrowserManager(
        headless=True,
        recordings_dir=str(tmp_path / "recordings"),
        playwright_factory=playwright_factory
    )


@pytest.fixture
def store(storage, hub, browser_manager):
    """Session store with background reconciliation disabled."""
    return RecordingSessionStore(storage, hub, browser_manager, reconcile_interval=0)


class RecordingConsumer:
    """Notification consumer that keeps every message it receives."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    async def send_json(self, message: Dict[str, Any]):
        self.messages.append(message)

    def events(self) -> List[str]:
        return [message["event"] for message in self.messages]


@pytest.fixture
def consumer():
    return RecordingConsumer()


# ==================== Sample Data ====================

@pytest.fixture
def login_flow() -> Dict[str, Any]:
    """Create-session payload for the Login Flow scenario."""
    return {
        "test_name": "Login Flow",
        "target_url": "https://example.com",
        "settings": {
            "healing_strategies": ["attribute_matching", "text_content_matching"]
        }
    }
