"""
Playwright Code Generator

Renders a recording session into a @playwright/test TypeScript spec.

Output is a pure function of the session's steps, settings and
metadata: no clocks, no random ids, stable ordering. Identical
sessions always render byte-identical scripts, and appending a step
only appends that step's block.
"""

import json
import re
import logging
from typing import Any, Dict
from urllib.parse import urlparse

from models import (
    ActionType,
    AssertionStrictness,
    RecordedStep,
    RecordingSession,
    ScreenshotMode,
)

# Configure logging
logger = logging.getLogger(__name__)

INDENT = "  "

SCREENSHOT_OPTIONS = {
    ScreenshotMode.NONE: "off",
    ScreenshotMode.ON_FAILURE: "only-on-failure",
    ScreenshotMode.ALWAYS: "on",
}

HELPER_FUNCTIONS = """// Self-healing helper functions
async function findElementWithHealing(page: Page, selector: string, fallbackSelectors: string[] = []): Promise<Locator> {
  const candidates = [selector, ...fallbackSelectors];

  for (let attempt = 1; attempt <= MAX_RETRY_ATTEMPTS; attempt++) {
    for (const candidate of candidates) {
      try {
        const element = page.locator(candidate).first();
        await element.waitFor({ timeout: FALLBACK_TIMEOUT });
        if (candidate !== selector) {
          console.warn(`Self-healing: ${selector} resolved via fallback ${candidate}`);
        }
        return element;
      } catch (error) {
        console.warn(`Selector failed (attempt ${attempt}): ${candidate}`);
      }
    }
  }

  throw new Error(`All selectors failed for: ${selector}`);
}

async function smartWait(page: Page, condition: string, timeout: number = 5000): Promise<void> {
  try {
    switch (condition) {
      case 'networkidle':
        await page.waitForLoadState('networkidle', { timeout });
        break;
      case 'domcontentloaded':
        await page.waitForLoadState('domcontentloaded', { timeout });
        break;
      case 'load':
        await page.waitForLoadState('load', { timeout });
        break;
      default:
        await page.waitForTimeout(timeout);
    }
  } catch (error) {
    console.warn(`Wait condition '${condition}' timed out, continuing...`);
  }
}"""


def js_string(value: Any) -> str:
    """Quote a value as a JavaScript string literal"""
    return json.dumps("" if value is None else str(value))


def comment_text(value: str) -> str:
    """Collapse a description onto one comment line"""
    return re.sub(r"\s+", " ", value or "").strip()


def spec_filename(test_name: str) -> str:
    slug = re.sub(r"\s+", "-", test_name.strip().lower())
    slug = re.sub(r"[^a-z0-9._-]", "", slug) or "recorded-test"
    return f"{slug}.spec.ts"


class PlaywrightCodeGenerator:
    """Generates Playwright test code and its supporting config files"""

    def __init__(self):
        self._rules = {
            ActionType.NAVIGATE.value: self._render_navigate,
            ActionType.CLICK.value: self._render_click,
            ActionType.FILL.value: self._render_fill,
            ActionType.SELECT.value: self._render_select,
            ActionType.WAIT.value: self._render_wait,
            ActionType.ASSERTION.value: self._render_assertion,
            ActionType.SCREENSHOT.value: self._render_screenshot,
        }

    # ==================== Test Script ====================

    def render(self, session: RecordingSession) -> str:
        """Render the full test script for a session"""
        sections = [
            "import { test, expect, Page, Locator } from '@playwright/test';",
            self._render_header(session),
            self._render_test_options(session),
            self._render_constants(session),
            self._render_test_function(session),
            HELPER_FUNCTIONS,
        ]
        return "\n\n".join(sections) + "\n"

    def _render_header(self, session: RecordingSession) -> str:
        return "\n".join([
            f"// Test: {comment_text(session.test_name)}",
            f"// Target: {comment_text(session.target_url)}",
            f"// Recorded session: {session.id}",
        ])

    def _render_test_options(self, session: RecordingSession) -> str:
        viewport = session.metadata.viewport
        return "\n".join([
            "test.use({",
            f"{INDENT}viewport: {{ width: {viewport.width}, height: {viewport.height} }},",
            f"{INDENT}userAgent: {js_string(session.metadata.user_agent)},",
            f"{INDENT}screenshot: {js_string(SCREENSHOT_OPTIONS[session.settings.screenshot_mode])},",
            f"{INDENT}actionTimeout: {session.settings.wait_timeout},",
            "});",
        ])

    def _render_constants(self, session: RecordingSession) -> str:
        return "\n".join([
            f"const FALLBACK_TIMEOUT = {session.settings.fallback_timeout};",
            f"const MAX_RETRY_ATTEMPTS = {session.settings.max_retry_attempts};",
        ])

    def _render_test_function(self, session: RecordingSession) -> str:
        blocks = [
            self.render_step(step, index + 1, session)
            for index, step in enumerate(session.steps)
        ]
        body = "\n\n".join(blocks)
        if body:
            body += "\n"
        return f"test({js_string(session.test_name)}, async ({{ page }}) => {{\n{body}}});"

    def render_step(self, step: RecordedStep, number: int, session: RecordingSession) -> str:
        """Render one step block: a comment line followed by its action"""
        kind = step.type.value if isinstance(step.type, ActionType) else str(step.type)
        comment = f"{INDENT}// Step {number}: {comment_text(step.description)}"
        rule = self._rules.get(kind)
        if rule is None:
            logger.warning(f"No rendering rule for step type {kind!r}, emitting marker")
            return f"{comment}\n{INDENT}// Unsupported step type: {comment_text(kind)}"
        return f"{comment}\n{INDENT}{rule(step, session)}"

    def _locate(self, step: RecordedStep) -> str:
        fallbacks = json.dumps(list(step.fallback_selectors or []))
        return f"await findElementWithHealing(page, {js_string(step.selector)}, {fallbacks})"

    def _render_navigate(self, step: RecordedStep, session: RecordingSession) -> str:
        url = step.action_params.get("url") or step.selector
        return f"await page.goto({js_string(url)});"

    def _render_click(self, step: RecordedStep, session: RecordingSession) -> str:
        return f"await ({self._locate(step)}).click();"

    def _render_fill(self, step: RecordedStep, session: RecordingSession) -> str:
        value = step.action_params.get("value", "")
        return f"await ({self._locate(step)}).fill({js_string(value)});"

    def _render_select(self, step: RecordedStep, session: RecordingSession) -> str:
        value = step.action_params.get("value", "")
        return f"await ({self._locate(step)}).selectOption({js_string(value)});"

    def _render_wait(self, step: RecordedStep, session: RecordingSession) -> str:
        condition = step.action_params.get("condition", "networkidle")
        timeout = int(step.action_params.get("timeout", 5000))
        return f"await smartWait(page, {js_string(condition)}, {timeout});"

    def _render_assertion(self, step: RecordedStep, session: RecordingSession) -> str:
        expected = js_string(step.action_params.get("expected_text", ""))
        if session.settings.assertion_strictness == AssertionStrictness.STRICT:
            matcher = "toHaveText"
        else:
            matcher = "toContainText"
        return f"await expect({self._locate(step)}).{matcher}({expected});"

    def _render_screenshot(self, step: RecordedStep, session: RecordingSession) -> str:
        filename = step.action_params.get("filename", "screenshot")
        path = js_string(f"test-results/{filename}.png")
        return f"await page.screenshot({{ path: {path}, fullPage: true }});"

    # ==================== Supporting Files ====================

    def render_config(self, session: RecordingSession) -> str:
        """Render playwright.config.ts from session metadata"""
        parsed = urlparse(session.target_url)
        base_url = f"{parsed.scheme}://{parsed.netloc}" if parsed.netloc else session.target_url
        viewport = session.metadata.viewport
        screenshot = SCREENSHOT_OPTIONS[session.settings.screenshot_mode]

        return f"""import {{ defineConfig, devices }} from '@playwright/test';

export default defineConfig({{
  testDir: './tests',
  fullyParallel: true,
  forbidOnly: !!process.env.CI,
  retries: process.env.CI ? 2 : 0,
  workers: process.env.CI ? 1 : undefined,
  reporter: [
    ['html'],
    ['junit', {{ outputFile: 'results.xml' }}],
    ['json', {{ outputFile: 'test-results.json' }}]
  ],

  use: {{
    baseURL: {js_string(base_url)},
    viewport: {{ width: {viewport.width}, height: {viewport.height} }},
    trace: 'on-first-retry',
    screenshot: {js_string(screenshot)},
    video: 'retain-on-failure',
    actionTimeout: {session.settings.wait_timeout},
    navigationTimeout: 30000,
  }},

  projects: [
    {{
      name: 'chromium',
      use: {{ ...devices['Desktop Chrome'] }},
    }},
    {{
      name: 'firefox',
      use: {{ ...devices['Desktop Firefox'] }},
    }},
    {{
      name: 'webkit',
      use: {{ ...devices['Desktop Safari'] }},
    }},
    {{
      name: 'mobile-chrome',
      use: {{ ...devices['Pixel 5'] }},
    }},
    {{
      name: 'mobile-safari',
      use: {{ ...devices['iPhone 12'] }},
    }},
  ],
}});
"""

    def render_package_json(self, test_name: str) -> str:
        package: Dict[str, Any] = {
            "name": spec_filename(test_name)[: -len(".spec.ts")],
            "version": "1.0.0",
            "description": f"Playwright tests for {test_name}",
            "scripts": {
                "test": "playwright test",
                "test:headed": "playwright test --headed",
                "test:debug": "playwright test --debug",
                "test:ui": "playwright test --ui",
                "report": "playwright show-report",
                "install:browsers": "playwright install",
            },
            "devDependencies": {
                "@playwright/test": "^1.40.0",
            },
        }
        return json.dumps(package, indent=2)

    def render_suite(self, session: RecordingSession, cicd_generator, platform: str) -> Dict[str, Any]:
        """Render every file of an exportable test project"""
        files: Dict[str, str] = {
            f"tests/{spec_filename(session.test_name)}": self.render(session),
            "playwright.config.ts": self.render_config(session),
            "package.json": self.render_package_json(session.test_name),
            cicd_generator.get_config_filename(platform): cicd_generator.generate_config(platform),
        }
        return {
            "files": files,
            "metadata": {
                "test_name": session.test_name,
                "steps_count": len(session.steps),
                "target_url": session.target_url,
                "created_at": session.created_at.isoformat(),
            },
        }
