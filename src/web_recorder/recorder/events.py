"""
Recorded Events - The typed event taxonomy and payload builders.

Events are immutable dataclasses tagged by ``EventType``. Raw JSON payloads
posted by the in-page script are turned into events by ``build_event``,
which dispatches to one builder per type. Each builder validates the fields
its type requires and raises ``InvalidEventPayload`` when one is missing.

Control-flow events (Conditional, Loop, Group, TryCatch) reference their
children by event id so the ordered event list alone is enough to rebuild
the nesting.
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Collection, Dict, Mapping, Optional, Tuple

from web_recorder.exceptions import InvalidEventPayload, UnsupportedEventType
from web_recorder.interfaces.driver import Viewport

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Closed set of recorded event tags."""
    CLICK = "CLICK"
    INPUT = "INPUT"
    NAVIGATION = "NAVIGATION"
    HOVER = "HOVER"
    SCROLL = "SCROLL"
    WAIT = "WAIT"
    ASSERTION = "ASSERTION"
    CAPTURE = "CAPTURE"
    CONDITIONAL = "CONDITIONAL"
    LOOP = "LOOP"
    GROUP = "GROUP"
    TRY_CATCH = "TRY_CATCH"
    CUSTOM = "CUSTOM"


class NavigationTrigger(str, Enum):
    """What caused a navigation."""
    LINK_CLICK = "LINK_CLICK"
    FORM_SUBMISSION = "FORM_SUBMISSION"
    SCRIPT = "SCRIPT"
    USER_INITIATED = "USER_INITIATED"
    REDIRECT = "REDIRECT"
    RELOAD = "RELOAD"
    BACK_BUTTON = "BACK_BUTTON"
    FORWARD_BUTTON = "FORWARD_BUTTON"
    ADDRESS_BAR = "ADDRESS_BAR"
    HISTORY_API = "HISTORY_API"
    OTHER = "OTHER"


class AssertionType(str, Enum):
    """Kinds of recorded assertions."""
    PRESENT = "PRESENT"
    VISIBLE = "VISIBLE"
    ENABLED = "ENABLED"
    SELECTED = "SELECTED"
    TEXT_EQUALS = "TEXT_EQUALS"
    TEXT_CONTAINS = "TEXT_CONTAINS"
    ATTRIBUTE_EQUALS = "ATTRIBUTE_EQUALS"
    ATTRIBUTE_CONTAINS = "ATTRIBUTE_CONTAINS"
    URL = "URL"
    URL_CONTAINS = "URL_CONTAINS"
    TITLE = "TITLE"
    TITLE_CONTAINS = "TITLE_CONTAINS"
    EQUALS = "EQUALS"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    REGEX_MATCH = "REGEX_MATCH"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    COUNT_EQUALS = "COUNT_EQUALS"
    COUNT_GREATER_THAN = "COUNT_GREATER_THAN"
    COUNT_LESS_THAN = "COUNT_LESS_THAN"
    CUSTOM_JAVASCRIPT = "CUSTOM_JAVASCRIPT"


# Assertions about the page itself rather than an element
PAGE_LEVEL_ASSERTIONS = frozenset({
    AssertionType.URL,
    AssertionType.URL_CONTAINS,
    AssertionType.TITLE,
    AssertionType.TITLE_CONTAINS,
    AssertionType.CUSTOM_JAVASCRIPT,
})


class CaptureSource(str, Enum):
    """Where a captured value comes from."""
    ELEMENT = "ELEMENT"
    RESPONSE = "RESPONSE"
    JAVASCRIPT = "JAVASCRIPT"
    URL = "URL"
    COOKIE = "COOKIE"
    STORAGE = "STORAGE"


class CaptureMethod(str, Enum):
    """How a captured value is extracted from its source."""
    PROPERTY = "PROPERTY"
    ATTRIBUTE = "ATTRIBUTE"
    INNER_TEXT = "INNER_TEXT"
    INNER_HTML = "INNER_HTML"
    TEXT_CONTENT = "TEXT_CONTENT"
    JSON_PATH = "JSON_PATH"
    XPATH = "XPATH"
    REGEX = "REGEX"
    JAVASCRIPT = "JAVASCRIPT"


class ConditionOperator(str, Enum):
    """Comparison used by a conditional block."""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    MATCHES = "MATCHES"
    IS_TRUE = "IS_TRUE"
    IS_FALSE = "IS_FALSE"


class LoopType(str, Enum):
    """Loop block kinds."""
    COUNT = "COUNT"
    WHILE = "WHILE"
    UNTIL = "UNTIL"
    FOR_EACH = "FOR_EACH"


def _frozen_map(value: Any) -> Mapping[str, Any]:
    return MappingProxyType(dict(value)) if isinstance(value, dict) else MappingProxyType({})


@dataclass(frozen=True)
class BoundingBox:
    """Element position and size in page coordinates."""
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class ElementInfo:
    """
    Snapshot of the DOM element an event targeted.

    Captured by the page script at event time; never refers back to a live
    element.
    """
    tag_name: str
    id: Optional[str] = None
    classes: Tuple[str, ...] = ()
    name: Optional[str] = None
    text: Optional[str] = None
    href: Optional[str] = None
    src: Optional[str] = None
    alt: Optional[str] = None
    title: Optional[str] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None
    type: Optional[str] = None
    is_visible: bool = True
    is_enabled: bool = True
    is_selected: bool = False
    is_required: bool = False
    bounding_box: Optional[BoundingBox] = None
    attributes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    css_selector: Optional[str] = None
    xpath: Optional[str] = None
    selector: Optional[str] = None

    @property
    def best_locator(self) -> Optional[str]:
        """Most stable locator available, or None if the element has none."""
        if self.id:
            return f"#{self.id}"
        for candidate in (self.css_selector, self.xpath, self.selector):
            if candidate:
                return candidate
        if self.name:
            return f'[name="{self.name}"]'
        return None

    @property
    def is_password(self) -> bool:
        return (self.type or "").lower() == "password"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementInfo":
        """Build from a page-script element payload (camelCase keys)."""
        classes = data.get("classes")
        if classes is None:
            classes = data.get("classList")
        if classes is None:
            classes = data.get("className") or ""
        if isinstance(classes, str):
            classes = classes.split()
        elif not isinstance(classes, (list, tuple)):
            raise InvalidEventPayload(
                f"classes must be a list or a space-separated string, got {type(classes).__name__}",
                field="targetElement.classes",
            )

        box = data.get("boundingBox") or data.get("rect")
        bounding_box = None
        if isinstance(box, dict):
            try:
                bounding_box = BoundingBox(
                    x=float(box.get("x", box.get("left", 0))),
                    y=float(box.get("y", box.get("top", 0))),
                    width=float(box.get("width", 0)),
                    height=float(box.get("height", 0)),
                )
            except (TypeError, ValueError):
                bounding_box = None

        attributes = data.get("attributes")
        attributes = {str(k): str(v) for k, v in attributes.items()} if isinstance(attributes, dict) else {}

        return cls(
            tag_name=str(data.get("tagName") or data.get("tag") or "").lower(),
            id=_text(data.get("id")),
            classes=tuple(str(c) for c in classes if c),
            name=_text(data.get("name")),
            text=_text(data.get("text") or data.get("textContent") or data.get("innerText")),
            href=_text(data.get("href")),
            src=_text(data.get("src")),
            alt=_text(data.get("alt")),
            title=_text(data.get("title")),
            placeholder=_text(data.get("placeholder")),
            value=_text(data.get("value")),
            type=_text(data.get("type")),
            is_visible=bool(data.get("isVisible", data.get("visible", True))),
            is_enabled=bool(data.get("isEnabled", data.get("enabled", True))),
            is_selected=bool(data.get("isSelected", data.get("selected", data.get("checked", False)))),
            is_required=bool(data.get("isRequired", data.get("required", False))),
            bounding_box=bounding_box,
            attributes=MappingProxyType(attributes),
            css_selector=_text(data.get("cssSelector") or data.get("css")),
            xpath=_text(data.get("xpath") or data.get("xPath")),
            selector=_text(data.get("selector")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)


# ==================== Event variants ====================

@dataclass(frozen=True, kw_only=True)
class RecordedEvent:
    """Fields shared by every recorded event."""
    event_type: ClassVar[EventType]

    id: str
    timestamp: float
    url: str = ""
    page_title: str = ""
    viewport: Optional[Viewport] = None
    target_element: Optional[ElementInfo] = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def referenced_ids(self) -> Tuple[str, ...]:
        """Ids of child events this event refers to."""
        return ()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape consumed downstream."""
        data = {"type": self.event_type.value}
        data.update(_serialize(self))
        return data


@dataclass(frozen=True, kw_only=True)
class ClickEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.CLICK

    button: str = "left"
    click_count: int = 1
    double_click: bool = False
    right_click: bool = False
    modifiers: Tuple[str, ...] = ()
    client_x: Optional[float] = None
    client_y: Optional[float] = None


@dataclass(frozen=True, kw_only=True)
class InputEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.INPUT

    value: Optional[str] = field(default=None, repr=False)
    key: Optional[str] = None
    is_password: bool = False
    files: Tuple[str, ...] = ()
    clear_first: bool = True


@dataclass(frozen=True, kw_only=True)
class NavigationEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.NAVIGATION

    target_url: str
    source_url: str = ""
    trigger: NavigationTrigger = NavigationTrigger.LINK_CLICK


@dataclass(frozen=True, kw_only=True)
class HoverEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.HOVER

    duration_ms: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class ScrollEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.SCROLL

    scroll_x: float = 0.0
    scroll_y: float = 0.0


@dataclass(frozen=True, kw_only=True)
class WaitEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.WAIT

    duration_ms: Optional[int] = None
    condition: Optional[str] = None
    timeout_ms: Optional[int] = None


@dataclass(frozen=True, kw_only=True)
class AssertionEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.ASSERTION

    assertion_type: AssertionType
    expected_value: Optional[str] = None
    attribute_name: Optional[str] = None
    script: Optional[str] = None
    negated: bool = False
    soft: bool = False


@dataclass(frozen=True, kw_only=True)
class CaptureEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.CAPTURE

    variable_name: str
    source: CaptureSource
    method: Optional[CaptureMethod] = None
    selector: Optional[str] = None
    attribute: Optional[str] = None
    expression: Optional[str] = None
    is_global: bool = False


@dataclass(frozen=True, kw_only=True)
class ConditionalEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.CONDITIONAL

    operator: ConditionOperator
    left_operand: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    right_operand: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    negated: bool = False
    then_event_ids: Tuple[str, ...] = ()
    else_event_ids: Tuple[str, ...] = ()

    @property
    def referenced_ids(self) -> Tuple[str, ...]:
        return self.then_event_ids + self.else_event_ids


@dataclass(frozen=True, kw_only=True)
class LoopEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.LOOP

    loop_type: LoopType
    iteration_variable: str
    count: Optional[int] = None
    condition: Optional[str] = None
    data_source_id: Optional[str] = None
    max_iterations: Optional[int] = None
    child_event_ids: Tuple[str, ...] = ()

    @property
    def referenced_ids(self) -> Tuple[str, ...]:
        return self.child_event_ids


@dataclass(frozen=True, kw_only=True)
class GroupEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.GROUP

    name: str
    description: Optional[str] = None
    collapsed: bool = False
    child_event_ids: Tuple[str, ...] = ()

    @property
    def referenced_ids(self) -> Tuple[str, ...]:
        return self.child_event_ids


@dataclass(frozen=True, kw_only=True)
class TryCatchEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.TRY_CATCH

    try_event_ids: Tuple[str, ...]
    error_variable_name: str
    catch_event_ids: Tuple[str, ...] = ()
    finally_event_ids: Tuple[str, ...] = ()

    @property
    def referenced_ids(self) -> Tuple[str, ...]:
        return self.try_event_ids + self.catch_event_ids + self.finally_event_ids


@dataclass(frozen=True, kw_only=True)
class CustomEvent(RecordedEvent):
    event_type: ClassVar[EventType] = EventType.CUSTOM

    name: Optional[str] = None
    script: Optional[str] = None
    timeout_ms: Optional[int] = None
    use_element_context: bool = False
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


# ==================== Serialization ====================

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "__dataclass_fields__"):
        return _serialize(value)
    if isinstance(value, Mapping):
        return {str(k): _to_json(v) for k, v in value.items()}
    if isinstance(value, (tuple, list)):
        return [_to_json(v) for v in value]
    return value


def _serialize(obj: Any) -> Dict[str, Any]:
    return {_camel(f.name): _to_json(getattr(obj, f.name)) for f in fields(obj)}


# ==================== Payload helpers ====================

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _int(value: Any, event_type: EventType, field_name: str) -> Optional[int]:
    if value is None:
        return None
    number = _number(value)
    if number is None or not number.is_integer():
        raise InvalidEventPayload(
            f"{field_name} must be an integer", event_type.value, field_name
        )
    return int(number)


def _missing(event_type: EventType, field_name: str, reason: str = "is required") -> InvalidEventPayload:
    return InvalidEventPayload(f"{event_type.value} event: {field_name} {reason}", event_type.value, field_name)


def _enum(enum_cls: Any, value: Any, event_type: EventType, field_name: str) -> Any:
    if value is None:
        raise _missing(event_type, field_name)
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        raise _missing(event_type, field_name, f"has unknown value {value!r}")


def _ids(value: Any, event_type: EventType, field_name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise _missing(event_type, field_name, "must be a list of event ids")
    return tuple(value)


def _config(payload: Dict[str, Any], key: str, event_type: EventType) -> Dict[str, Any]:
    config = payload.get(key)
    if not isinstance(config, dict):
        raise _missing(event_type, key)
    return config


def _pick(primary: Dict[str, Any], fallback: Dict[str, Any], key: str) -> Any:
    return primary[key] if key in primary else fallback.get(key)


def _require_locator(common: Dict[str, Any], event_type: EventType) -> ElementInfo:
    element = common.get("target_element")
    if element is None:
        raise _missing(event_type, "targetElement")
    if element.best_locator is None:
        raise _missing(event_type, "targetElement", "has no usable locator")
    return element


# ==================== Per-type builders ====================

def _build_click(payload: Dict[str, Any], common: Dict[str, Any]) -> ClickEvent:
    _require_locator(common, EventType.CLICK)
    double = bool(payload.get("doubleClick"))
    right = bool(payload.get("rightClick")) or payload.get("button") in ("right", 2)
    modifiers = payload.get("modifiers")
    return ClickEvent(
        **common,
        button="right" if right else str(payload.get("button") or "left"),
        click_count=2 if double else (_int(payload.get("clickCount"), EventType.CLICK, "clickCount") or 1),
        double_click=double,
        right_click=right,
        modifiers=tuple(str(m) for m in modifiers) if isinstance(modifiers, list) else (),
        client_x=_number(payload.get("clientX")),
        client_y=_number(payload.get("clientY")),
    )


def _build_input(payload: Dict[str, Any], common: Dict[str, Any]) -> InputEvent:
    element = _require_locator(common, EventType.INPUT)
    value = payload["value"] if "value" in payload else payload.get("inputValue")
    files = payload.get("files")
    files = tuple(str(f) for f in files) if isinstance(files, list) else ()
    key = _text(payload.get("key"))
    if value is None and not files and key is None:
        raise _missing(EventType.INPUT, "value")
    return InputEvent(
        **common,
        value=None if value is None else str(value),
        key=key,
        is_password=element.is_password or bool(payload.get("isPassword")),
        files=files,
        clear_first=bool(payload.get("clearFirst", True)),
    )


def _build_navigation(payload: Dict[str, Any], common: Dict[str, Any]) -> NavigationEvent:
    target = _text(payload.get("targetUrl")) or _text(payload.get("url"))
    if target is None:
        raise _missing(EventType.NAVIGATION, "targetUrl")
    trigger = payload.get("trigger")
    return NavigationEvent(
        **common,
        target_url=target,
        source_url=str(payload.get("sourceUrl") or ""),
        trigger=(
            _enum(NavigationTrigger, trigger, EventType.NAVIGATION, "trigger")
            if trigger is not None else NavigationTrigger.LINK_CLICK
        ),
    )


def _build_hover(payload: Dict[str, Any], common: Dict[str, Any]) -> HoverEvent:
    _require_locator(common, EventType.HOVER)
    return HoverEvent(**common, duration_ms=_int(payload.get("durationMs"), EventType.HOVER, "durationMs"))


def _build_scroll(payload: Dict[str, Any], common: Dict[str, Any]) -> ScrollEvent:
    x = _number(payload.get("scrollX"))
    y = _number(payload.get("scrollY"))
    if x is None and y is None:
        raise _missing(EventType.SCROLL, "scrollX/scrollY")
    return ScrollEvent(**common, scroll_x=x or 0.0, scroll_y=y or 0.0)


def _build_wait(payload: Dict[str, Any], common: Dict[str, Any]) -> WaitEvent:
    duration = _int(payload.get("durationMs"), EventType.WAIT, "durationMs")
    condition = _text(payload.get("condition"))
    if duration is None and condition is None:
        raise _missing(EventType.WAIT, "durationMs or condition")
    if duration is not None and duration < 0:
        raise _missing(EventType.WAIT, "durationMs", "must not be negative")
    return WaitEvent(
        **common,
        duration_ms=duration,
        condition=condition,
        timeout_ms=_int(payload.get("timeoutMs"), EventType.WAIT, "timeoutMs"),
    )


def _build_assertion(payload: Dict[str, Any], common: Dict[str, Any]) -> AssertionEvent:
    assertion_type = _enum(AssertionType, payload.get("assertionType"), EventType.ASSERTION, "assertionType")
    if assertion_type not in PAGE_LEVEL_ASSERTIONS:
        _require_locator(common, EventType.ASSERTION)
    script = _text(payload.get("script"))
    if assertion_type is AssertionType.CUSTOM_JAVASCRIPT and script is None:
        raise _missing(EventType.ASSERTION, "script")
    expected = payload.get("expectedValue")
    return AssertionEvent(
        **common,
        assertion_type=assertion_type,
        expected_value=None if expected is None else str(expected),
        attribute_name=_text(payload.get("attributeName")),
        script=script,
        negated=bool(payload.get("negated")),
        soft=bool(payload.get("soft")),
    )


def _build_capture(payload: Dict[str, Any], common: Dict[str, Any]) -> CaptureEvent:
    config = _config(payload, "captureConfig", EventType.CAPTURE)
    variable = _text(config.get("variableName"))
    if variable is None:
        raise _missing(EventType.CAPTURE, "captureConfig.variableName")
    source = _enum(CaptureSource, config.get("source"), EventType.CAPTURE, "captureConfig.source")
    method = config.get("method")
    method = _enum(CaptureMethod, method, EventType.CAPTURE, "captureConfig.method") if method else None
    selector = _text(config.get("selector"))
    expression = _text(config.get("expression"))

    if source is CaptureSource.ELEMENT and common.get("target_element") is None and selector is None:
        raise _missing(EventType.CAPTURE, "targetElement or captureConfig.selector")
    if source is CaptureSource.JAVASCRIPT and expression is None:
        raise _missing(EventType.CAPTURE, "captureConfig.expression")

    return CaptureEvent(
        **common,
        variable_name=variable,
        source=source,
        method=method,
        selector=selector,
        attribute=_text(config.get("attribute") or config.get("property")),
        expression=expression,
        is_global=bool(config.get("isGlobal")),
    )


def _build_conditional(payload: Dict[str, Any], common: Dict[str, Any]) -> ConditionalEvent:
    config = _config(payload, "conditionConfig", EventType.CONDITIONAL)
    operator = _enum(ConditionOperator, config.get("operator"), EventType.CONDITIONAL, "conditionConfig.operator")
    return ConditionalEvent(
        **common,
        operator=operator,
        left_operand=_frozen_map(config.get("leftOperand")),
        right_operand=_frozen_map(config.get("rightOperand")),
        negated=bool(config.get("negated") or config.get("isNegated")),
        then_event_ids=_ids(_pick(config, payload, "thenEventIds"), EventType.CONDITIONAL, "thenEventIds"),
        else_event_ids=_ids(_pick(config, payload, "elseEventIds"), EventType.CONDITIONAL, "elseEventIds"),
    )


def _build_loop(payload: Dict[str, Any], common: Dict[str, Any]) -> LoopEvent:
    config = _config(payload, "loopConfig", EventType.LOOP)
    loop_type = _enum(LoopType, config.get("type"), EventType.LOOP, "loopConfig.type")
    count = _int(config.get("count"), EventType.LOOP, "loopConfig.count")
    condition = _text(config.get("condition"))
    data_source = _text(config.get("dataSourceId"))

    if loop_type is LoopType.COUNT and (count is None or count < 0):
        raise _missing(EventType.LOOP, "loopConfig.count", "must be a non-negative integer")
    if loop_type in (LoopType.WHILE, LoopType.UNTIL) and condition is None:
        raise _missing(EventType.LOOP, "loopConfig.condition")
    if loop_type is LoopType.FOR_EACH and data_source is None:
        raise _missing(EventType.LOOP, "loopConfig.dataSourceId")

    variable = _text(config.get("iterationVariable"))
    if variable is None:
        raise _missing(EventType.LOOP, "loopConfig.iterationVariable")
    max_iterations = _int(config.get("maxIterations"), EventType.LOOP, "loopConfig.maxIterations")
    if max_iterations is not None and max_iterations <= 0:
        raise _missing(EventType.LOOP, "loopConfig.maxIterations", "must be positive")

    return LoopEvent(
        **common,
        loop_type=loop_type,
        iteration_variable=variable,
        count=count,
        condition=condition,
        data_source_id=data_source,
        max_iterations=max_iterations,
        child_event_ids=_ids(_pick(config, payload, "childEventIds"), EventType.LOOP, "childEventIds"),
    )


def _build_group(payload: Dict[str, Any], common: Dict[str, Any]) -> GroupEvent:
    name = _text(payload.get("name") or payload.get("groupName"))
    if name is None:
        raise _missing(EventType.GROUP, "name")
    return GroupEvent(
        **common,
        name=name,
        description=_text(payload.get("description")),
        collapsed=bool(payload.get("collapsed")),
        child_event_ids=_ids(payload.get("childEventIds"), EventType.GROUP, "childEventIds"),
    )


def _build_try_catch(payload: Dict[str, Any], common: Dict[str, Any]) -> TryCatchEvent:
    try_ids = _ids(payload.get("tryEventIds"), EventType.TRY_CATCH, "tryEventIds")
    if not try_ids:
        raise _missing(EventType.TRY_CATCH, "tryEventIds", "must not be empty")
    error_variable = _text(payload.get("errorVariableName"))
    if error_variable is None:
        raise _missing(EventType.TRY_CATCH, "errorVariableName")
    return TryCatchEvent(
        **common,
        try_event_ids=try_ids,
        error_variable_name=error_variable,
        catch_event_ids=_ids(payload.get("catchEventIds"), EventType.TRY_CATCH, "catchEventIds"),
        finally_event_ids=_ids(payload.get("finallyEventIds"), EventType.TRY_CATCH, "finallyEventIds"),
    )


def _build_custom(payload: Dict[str, Any], common: Dict[str, Any]) -> CustomEvent:
    name = _text(payload.get("name"))
    script = _text(payload.get("script"))
    if name is None and script is None:
        raise _missing(EventType.CUSTOM, "name or script")
    timeout = _int(payload.get("timeoutMs"), EventType.CUSTOM, "timeoutMs")
    if timeout is not None and timeout <= 0:
        raise _missing(EventType.CUSTOM, "timeoutMs", "must be positive")
    use_context = bool(payload.get("useElementContext"))
    if use_context and common.get("target_element") is None:
        raise _missing(EventType.CUSTOM, "contextElement")
    return CustomEvent(
        **common,
        name=name,
        script=script,
        timeout_ms=timeout,
        use_element_context=use_context,
        data=_frozen_map(payload.get("data")),
    )


EVENT_BUILDERS: Dict[EventType, Callable[[Dict[str, Any], Dict[str, Any]], RecordedEvent]] = {
    EventType.CLICK: _build_click,
    EventType.INPUT: _build_input,
    EventType.NAVIGATION: _build_navigation,
    EventType.HOVER: _build_hover,
    EventType.SCROLL: _build_scroll,
    EventType.WAIT: _build_wait,
    EventType.ASSERTION: _build_assertion,
    EventType.CAPTURE: _build_capture,
    EventType.CONDITIONAL: _build_conditional,
    EventType.LOOP: _build_loop,
    EventType.GROUP: _build_group,
    EventType.TRY_CATCH: _build_try_catch,
    EventType.CUSTOM: _build_custom,
}

# Page-script shorthands: tag -> (event type, payload defaults)
EVENT_ALIASES: Dict[str, Tuple[EventType, Dict[str, Any]]] = {
    "DOUBLE_CLICK": (EventType.CLICK, {"doubleClick": True}),
    "RIGHT_CLICK": (EventType.CLICK, {"rightClick": True}),
    "KEYPRESS": (EventType.INPUT, {}),
    "FORM_SUBMIT": (EventType.CUSTOM, {"name": "form_submit"}),
    "TRYCATCH": (EventType.TRY_CATCH, {}),
    "CUSTOM_JS": (EventType.CUSTOM, {}),
}


def resolve_event_type(raw_type: Any) -> Tuple[EventType, Dict[str, Any]]:
    """
    Map a payload ``type`` value to an event type plus alias defaults.

    Raises:
        InvalidEventPayload: If the type is missing
        UnsupportedEventType: If the type is not in the taxonomy
    """
    if raw_type is None or (isinstance(raw_type, str) and not raw_type.strip()):
        raise InvalidEventPayload("Event type is required", None, "type")
    if not isinstance(raw_type, str):
        raise UnsupportedEventType(raw_type)

    normalized = raw_type.strip().upper().replace("-", "_")
    if normalized in EVENT_ALIASES:
        return EVENT_ALIASES[normalized]
    try:
        return EventType(normalized), {}
    except ValueError:
        raise UnsupportedEventType(raw_type)


def build_event(
    payload: Any,
    event_id: str,
    known_ids: Collection[str] = (),
) -> RecordedEvent:
    """
    Validate a raw page payload and build the typed event.

    Args:
        payload: Decoded JSON body posted by the page script
        event_id: Id to assign to the new event
        known_ids: Ids of events already in the session; control-flow events
            may only reference these

    Returns:
        The immutable event

    Raises:
        InvalidEventPayload: If a required field is missing or malformed
        UnsupportedEventType: If the declared type is unknown
    """
    if not isinstance(payload, dict):
        raise InvalidEventPayload("Event payload must be a JSON object")

    event_type, defaults = resolve_event_type(payload.get("type"))
    if defaults:
        payload = {**defaults, **payload}

    timestamp = _number(payload.get("timestamp"))
    if timestamp is None:
        raise _missing(event_type, "timestamp")

    element_data = payload.get("targetElement") or payload.get("contextElement")
    if element_data is not None and not isinstance(element_data, dict):
        raise _missing(event_type, "targetElement", "must be an object")

    common: Dict[str, Any] = {
        "id": event_id,
        "timestamp": timestamp,
        "url": str(payload.get("url") or ""),
        "page_title": str(payload.get("pageTitle") or payload.get("title") or ""),
        "viewport": Viewport.from_dict(payload.get("viewport")),
        "target_element": ElementInfo.from_dict(element_data) if element_data else None,
        "metadata": _frozen_map(payload.get("metadata")),
    }

    event = EVENT_BUILDERS[event_type](payload, common)

    unknown = [ref for ref in event.referenced_ids if ref not in known_ids]
    if unknown:
        raise InvalidEventPayload(
            f"{event_type.value} event references unknown events: {unknown}",
            event_type.value,
            "childEventIds",
        )
    return event
