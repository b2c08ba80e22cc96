from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActionType(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    WAIT = "wait"
    ASSERTION = "assertion"
    SCREENSHOT = "screenshot"


class SessionStatus(str, Enum):
    CREATED = "created"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


class HealingStrategy(str, Enum):
    ATTRIBUTE_MATCHING = "attribute_matching"
    TEXT_CONTENT_MATCHING = "text_content_matching"
    POSITIONAL_MATCHING = "positional_matching"
    VISUAL_AI_MATCHING = "visual_ai_matching"
    SEMANTIC_SIMILARITY = "semantic_similarity"


class ScreenshotMode(str, Enum):
    NONE = "none"
    ON_FAILURE = "on-failure"
    ALWAYS = "always"


class AssertionStrictness(str, Enum):
    STRICT = "strict"
    LOOSE = "loose"


class BrowserType(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class WaitCondition(str, Enum):
    NETWORK_IDLE = "networkidle"
    DOM_CONTENT_LOADED = "domcontentloaded"
    LOAD = "load"
    TIMEOUT = "timeout"


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


# ============ Per-action parameter schemas ============

class _StepParams(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NavigateParams(_StepParams):
    url: Optional[str] = None


class ClickParams(_StepParams):
    pass


class FillParams(_StepParams):
    value: str = ""


class SelectParams(_StepParams):
    value: str


class WaitParams(_StepParams):
    condition: WaitCondition = WaitCondition.NETWORK_IDLE
    timeout: int = Field(default=5000, ge=0, le=120000)  # milliseconds


class AssertionParams(_StepParams):
    expected_text: str = ""


class ScreenshotParams(_StepParams):
    filename: str = Field(default="screenshot", min_length=1, pattern=r"^[^/\\]+$")


ACTION_PARAM_MODELS = {
    ActionType.NAVIGATE: NavigateParams,
    ActionType.CLICK: ClickParams,
    ActionType.FILL: FillParams,
    ActionType.SELECT: SelectParams,
    ActionType.WAIT: WaitParams,
    ActionType.ASSERTION: AssertionParams,
    ActionType.SCREENSHOT: ScreenshotParams,
}

# Kinds that act on an element and therefore need a primary locator
SELECTOR_REQUIRED = {
    ActionType.CLICK,
    ActionType.FILL,
    ActionType.SELECT,
    ActionType.ASSERTION,
}


def validate_action_params(action: ActionType, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate free-form params against the schema of one action kind"""
    model = ACTION_PARAM_MODELS[action]
    return model(**(params or {})).model_dump(mode="json", exclude_none=True)


def default_description(action: ActionType, selector: str, params: Dict[str, Any]) -> str:
    """Human-readable description used when the caller supplies none"""
    if action == ActionType.NAVIGATE:
        return f"Navigate to {params.get('url') or selector}"
    if action == ActionType.CLICK:
        return f"Click on {selector}"
    if action == ActionType.FILL:
        return f"Fill \"{params.get('value', '')}\" in {selector}"
    if action == ActionType.SELECT:
        return f"Select \"{params.get('value', '')}\" in {selector}"
    if action == ActionType.WAIT:
        return f"Wait for {params.get('condition', 'networkidle')}"
    if action == ActionType.ASSERTION:
        return f"Assert {selector} contains \"{params.get('expected_text', '')}\""
    return f"Take screenshot {params.get('filename', 'screenshot')}"


# ============ Session configuration ============

class Viewport(BaseModel):
    width: int = 1920
    height: int = 1080


class SessionMetadata(BaseModel):
    """Browser and viewport the session is recorded with"""
    viewport: Viewport = Field(default_factory=Viewport)
    user_agent: str = DEFAULT_USER_AGENT
    browser: BrowserType = BrowserType.CHROMIUM


def default_strategies() -> List[HealingStrategy]:
    return [
        HealingStrategy.ATTRIBUTE_MATCHING,
        HealingStrategy.TEXT_CONTENT_MATCHING,
        HealingStrategy.POSITIONAL_MATCHING,
    ]


class SessionSettings(BaseModel):
    healing_strategies: List[HealingStrategy] = Field(default_factory=default_strategies)
    confidence_threshold: float = Field(default=0.8, ge=0, le=1)
    max_retry_attempts: int = Field(default=3, ge=1, le=10)
    fallback_timeout: int = Field(default=5000, ge=1000, le=60000)  # ms per attempt
    screenshot_mode: ScreenshotMode = ScreenshotMode.ON_FAILURE
    wait_timeout: int = Field(default=30000, ge=1000, le=120000)  # ms
    assertion_strictness: AssertionStrictness = AssertionStrictness.LOOSE


# ============ Session and step ============

class RecordedStep(BaseModel):
    id: str
    type: ActionType
    selector: str = ""
    action_params: Dict[str, Any] = {}
    description: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    fallback_selectors: List[str] = []
    screenshot: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    order_index: int = 0
    # True only once the durable mirror holds this exact state
    persisted: bool = False


class RecordingSession(BaseModel):
    id: str
    test_name: str
    target_url: str
    status: SessionStatus = SessionStatus.CREATED
    steps: List[RecordedStep] = []
    settings: SessionSettings = Field(default_factory=SessionSettings)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def get_step(self, step_id: str) -> Optional[RecordedStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def next_order_index(self) -> int:
        if not self.steps:
            return 0
        return max(step.order_index for step in self.steps) + 1


# ============ Requests ============

class UpdateSettingsRequest(BaseModel):
    """Partial settings; omitted fields keep their current value"""
    model_config = ConfigDict(extra="forbid")

    healing_strategies: Optional[List[HealingStrategy]] = None
    confidence_threshold: Optional[float] = Field(default=None, ge=0, le=1)
    max_retry_attempts: Optional[int] = Field(default=None, ge=1, le=10)
    fallback_timeout: Optional[int] = Field(default=None, ge=1000, le=60000)
    screenshot_mode: Optional[ScreenshotMode] = None
    wait_timeout: Optional[int] = Field(default=None, ge=1000, le=120000)
    assertion_strictness: Optional[AssertionStrictness] = None


class CreateSessionRequest(BaseModel):
    test_name: str = Field(min_length=1, max_length=255)
    target_url: str = Field(pattern=r"^https?://.+")
    settings: Optional[UpdateSettingsRequest] = None
    browser: Optional[BrowserType] = None


class UpdateSessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    test_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    target_url: Optional[str] = Field(default=None, pattern=r"^https?://.+")


class AddStepRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: ActionType
    selector: str = ""
    action_params: Dict[str, Any] = {}
    description: str = Field(default="", max_length=500)
    screenshot: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_action(self):
        self.action_params = validate_action_params(self.type, self.action_params)
        if self.type in SELECTOR_REQUIRED and not self.selector.strip():
            raise ValueError(f"selector is required for {self.type.value} steps")
        if self.type == ActionType.NAVIGATE and not (self.action_params.get("url") or self.selector):
            raise ValueError("navigate steps need action_params.url or a selector")
        if not self.description:
            self.description = default_description(self.type, self.selector, self.action_params)
        return self


class UpdateStepRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    selector: Optional[str] = None
    action_params: Optional[Dict[str, Any]] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    screenshot: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class StepValidationReport(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
