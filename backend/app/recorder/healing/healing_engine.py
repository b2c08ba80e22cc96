"""
Selector Healing Engine

Produces ranked fallback selectors for a recorded step and, at run
time, re-resolves a step against a live page when its primary
selector no longer matches.

Strategy Order (as configured per session):
1. Attribute matching - alternative attribute selectors from id/class/test-id
2. Text content matching - role and text selectors per action kind
3. Positional matching - sibling/position and ancestor-scoped variants
4. Semantic similarity - ARIA role selectors per action kind
5. Visual matching - visibility predicates (placeholder for image matching)

generate_fallbacks() is pure. resolve() performs I/O against the page
and makes a single pass; retrying is the caller's job.
"""

import re
import logging
from typing import Iterable, List, Optional
from dataclasses import dataclass

from playwright.async_api import Error as PlaywrightError

from models import ActionType, HealingStrategy

# Configure logging
logger = logging.getLogger(__name__)

PRIMARY_CONFIDENCE = 1.0
FALLBACK_CONFIDENCE = 0.8
UNRESOLVED_CONFIDENCE = 0.0

_TEST_ID_PATTERN = re.compile(r'data-testid="([^"]+)"')
_ID_PATTERN = re.compile(r'#([\w-]+)')
_CLASS_PATTERN = re.compile(r'\.([\w-]+)')


@dataclass
class HealingResult:
    """Outcome of one resolution pass"""
    healed: bool
    primary_resolved: bool
    confidence: float
    resolved_selector: Optional[str] = None

    def to_dict(self):
        return {
            "healed": self.healed,
            "primary_resolved": self.primary_resolved,
            "confidence": self.confidence,
            "resolved_selector": self.resolved_selector,
        }


def _kind(action) -> str:
    return action.value if isinstance(action, ActionType) else str(action)


class SelfHealingEngine:
    """
    Fallback selector generation and live resolution.

    The engine is stateless; one instance can be shared by every
    session in the process.
    """

    # ==================== Fallback Generation ====================

    def generate_fallbacks(
        self,
        selector: str,
        action,
        strategies: Iterable[HealingStrategy]
    ) -> List[str]:
        """
        Build the ordered, de-duplicated fallback list for a selector.

        Args:
            selector: The primary selector recorded for the step
            action: Step action kind (ActionType or its string value)
            strategies: Enabled strategies, in declaration order

        Returns:
            Fallback selectors; first occurrence wins on duplicates
        """
        fallbacks: List[str] = []
        for strategy in strategies:
            fallbacks.extend(self._apply_strategy(HealingStrategy(strategy), selector, _kind(action)))

        unique: List[str] = []
        seen = set()
        for candidate in fallbacks:
            if candidate in seen:
                continue
            seen.add(candidate)
            unique.append(candidate)
        return unique

    def _apply_strategy(self, strategy: HealingStrategy, selector: str, kind: str) -> List[str]:
        if strategy == HealingStrategy.ATTRIBUTE_MATCHING:
            return self._attribute_fallbacks(selector)
        if strategy == HealingStrategy.TEXT_CONTENT_MATCHING:
            return self._text_fallbacks(kind)
        if strategy == HealingStrategy.POSITIONAL_MATCHING:
            return self._positional_fallbacks(selector)
        if strategy == HealingStrategy.SEMANTIC_SIMILARITY:
            return self._semantic_fallbacks(kind)
        if strategy == HealingStrategy.VISUAL_AI_MATCHING:
            return self._visual_fallbacks()
        return []

    def _attribute_fallbacks(self, selector: str) -> List[str]:
        if not selector:
            return []

        test_id = _TEST_ID_PATTERN.search(selector)
        if test_id:
            value = test_id.group(1)
            return [
                f'[aria-label*="{value}"]',
                f'[id*="{value}"]',
                f'[name*="{value}"]',
                f'[title*="{value}"]',
            ]

        element_id = _ID_PATTERN.search(selector)
        if element_id:
            value = element_id.group(1)
            return [
                f'[data-testid="{value}"]',
                f'[id*="{value}"]',
                f'[name="{value}"]',
                f'[aria-label*="{value}"]',
            ]

        class_name = _CLASS_PATTERN.search(selector)
        if class_name:
            value = class_name.group(1)
            return [
                f'[data-testid*="{value}"]',
                f'[class*="{value}"]',
                f'[aria-label*="{value}"]',
            ]

        return []

    def _text_fallbacks(self, kind: str) -> List[str]:
        if kind == ActionType.CLICK.value:
            return [
                'button:has-text("Submit")',
                'button:has-text("Save")',
                'button:has-text("Continue")',
                'a:has-text("Click")',
                '[role="button"]',
            ]
        if kind == ActionType.FILL.value:
            return [
                'input[type="text"]',
                'input[type="email"]',
                'input[type="password"]',
                'textarea',
                '[role="textbox"]',
            ]
        if kind == ActionType.SELECT.value:
            return [
                'select',
                '[role="combobox"]',
                '[role="listbox"]',
            ]
        return []

    def _positional_fallbacks(self, selector: str) -> List[str]:
        base = selector.split()[0] if selector.split() else ""
        if not base:
            return []
        return [
            f"{base}:first-child",
            f"{base}:last-child",
            f"{base}:nth-child(1)",
            f"{base}:nth-child(2)",
            # Ancestor-scoped
            f"form {base}",
            f"div {base}",
            f"main {base}",
        ]

    def _semantic_fallbacks(self, kind: str) -> List[str]:
        if kind == ActionType.CLICK.value:
            return ['[role="button"]', '[role="link"]', '[role="menuitem"]', '[role="tab"]']
        if kind == ActionType.FILL.value:
            return ['[role="textbox"]', '[role="searchbox"]', '[aria-label*="input"]', '[aria-label*="field"]']
        if kind == ActionType.ASSERTION.value:
            return ['[role="heading"]', '[role="status"]', '[role="alert"]', '[aria-live]']
        return []

    def _visual_fallbacks(self) -> List[str]:
        # Image-based matching is not implemented; visibility predicates stand in
        return ['[style*="visible"]', '[style*="display: block"]', ':visible']

    # ==================== Live Resolution ====================

    async def validate_selector(self, page, selector: str, timeout_ms: int) -> bool:
        """Check whether a selector matches at least one element in time"""
        try:
            await page.locator(selector).first.wait_for(state="attached", timeout=timeout_ms)
            return True
        except PlaywrightError as e:
            logger.debug(f"Selector did not resolve: {selector} ({e})")
            return False

    async def resolve(
        self,
        selector: str,
        fallback_selectors: List[str],
        page,
        per_attempt_timeout: int
    ) -> HealingResult:
        """
        Resolve a step against a live page.

        Tries the primary selector, then each fallback in list order.

        Args:
            selector: Primary selector
            fallback_selectors: Ranked fallbacks recorded on the step
            page: Playwright page
            per_attempt_timeout: Milliseconds allowed per selector

        Returns:
            HealingResult; confidence 0.0 means nothing resolved
        """
        if selector and await self.validate_selector(page, selector, per_attempt_timeout):
            return HealingResult(
                healed=False,
                primary_resolved=True,
                confidence=PRIMARY_CONFIDENCE,
                resolved_selector=selector
            )

        logger.warning(f"Primary selector failed: {selector}")

        for fallback in fallback_selectors:
            if await self.validate_selector(page, fallback, per_attempt_timeout):
                logger.info(f"Self-healing: found working fallback selector: {fallback}")
                return HealingResult(
                    healed=True,
                    primary_resolved=False,
                    confidence=FALLBACK_CONFIDENCE,
                    resolved_selector=fallback
                )

        return HealingResult(
            healed=False,
            primary_resolved=False,
            confidence=UNRESOLVED_CONFIDENCE
        )
