"""
Negotiation Step Definitions
============================

One definition per negotiation step. A step definition knows:
- the payload schema (ordered named fields with a value kind and default)
- how to encode a typed payload into the document's plain mapping
- how to decode a possibly partial mapping back into a typed payload

Decoding never fails the whole payload. A racing reader can observe a
half-written document, so every missing or mistyped field falls back
to its documented default and the result says so (DecodeResult.defaulted).

Example:
    step = get_step(StepID.BLOCK_SCHEDULE)
    raw = step.encode(BlockSchedule(start_minutes=1260, end_minutes=420))
    # {"startMinutes": 1260, "endMinutes": 420}
    step.decode({"startMinutes": 1260}).payload
    # BlockSchedule(start_minutes=1260, end_minutes=0)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import InvalidPayload, UnknownStep, UnsupportedValueType
from .values import VALUE_KINDS, copy_plain, encode_mapping, kind_of


logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


class StepID(str, Enum):
    """Identifiers of the negotiation steps, in flow order."""
    BLOCK_SCHEDULE = "blockSchedule"
    APP_SELECTION = "appSelection"


# ============================================================
# PAYLOAD TYPES
# ============================================================

@dataclass(frozen=True)
class BlockSchedule:
    """
    Daily blocking window, in minutes since midnight.

    The window may wrap midnight (start 21:00, end 07:00).
    """
    start_minutes: int
    end_minutes: int

    def __post_init__(self):
        for name in ("start_minutes", "end_minutes"):
            minutes = getattr(self, name)
            if isinstance(minutes, bool) or not isinstance(minutes, int):
                raise ValueError(f"{name} must be an integer, got {minutes!r}")
            if not 0 <= minutes < MINUTES_PER_DAY:
                raise ValueError(f"{name} must be within a day, got {minutes}")

    def format(self) -> str:
        return f"{format_minutes(self.start_minutes)} -> {format_minutes(self.end_minutes)}"


@dataclass(frozen=True)
class AppSelection:
    """Opaque app and category tokens chosen for blocking."""
    app_tokens: Tuple[str, ...] = ()
    category_tokens: Tuple[str, ...] = ()

    def union(self, other: "AppSelection") -> "AppSelection":
        return AppSelection(
            app_tokens=tuple(sorted(set(self.app_tokens) | set(other.app_tokens))),
            category_tokens=tuple(sorted(set(self.category_tokens) | set(other.category_tokens))),
        )


def format_minutes(minutes: int) -> str:
    """1260 -> '21:00'"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


# ============================================================
# SCHEMA
# ============================================================

@dataclass(frozen=True)
class FieldSpec:
    """
    One named payload field with its value kind and fallback.

    `valid` optionally narrows the kind (e.g. minutes within a day); a
    stored value failing it is defaulted like a missing one.
    """
    name: str
    kind: str
    default: Any
    valid: Optional[Callable[[Any], bool]] = field(default=None, compare=False)

    def __post_init__(self):
        if self.kind not in VALUE_KINDS:
            raise ValueError(f"Unknown value kind for {self.name}: {self.kind!r}")

    def accepts(self, value: Any) -> bool:
        return self.valid is None or self.valid(value)


@dataclass
class DecodeResult:
    """
    Outcome of decoding a stored payload.

    defaulted_fields lists every field that was missing, mistyped or
    out of range and replaced by its default.
    """
    payload: Any
    defaulted_fields: List[str] = field(default_factory=list)

    @property
    def defaulted(self) -> bool:
        return bool(self.defaulted_fields)


def _read_fields(schema: Tuple[FieldSpec, ...], raw: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], List[str]]:
    values: Dict[str, Any] = {}
    defaulted: List[str] = []
    raw = raw if isinstance(raw, dict) else {}

    for spec in schema:
        if spec.name not in raw:
            values[spec.name] = copy_plain(spec.default)
            defaulted.append(spec.name)
            continue

        candidate = raw[spec.name]
        try:
            kind = kind_of(candidate)
        except UnsupportedValueType:
            kind = None

        if kind == spec.kind:
            value = copy_plain(candidate)
        elif spec.kind == "float" and kind == "integer":
            value = float(candidate)
        else:
            value = None

        if value is not None and spec.accepts(value):
            values[spec.name] = value
        else:
            values[spec.name] = copy_plain(spec.default)
            defaulted.append(spec.name)

    return values, defaulted


class StepDefinition:
    """
    Schema plus codec for one negotiation step.

    Subclasses supply `build` (plain field values -> payload) and
    `fields_of` (payload -> plain field values). Encoding and lenient
    decoding are shared.
    """

    step_id: StepID
    schema: Tuple[FieldSpec, ...] = ()
    payload_type: type = dict

    def default_draft(self) -> Any:
        """Payload a party starts from before submitting anything."""
        values, _ = _read_fields(self.schema, {})
        return self.build(values)

    def build(self, values: Dict[str, Any]) -> Any:
        raise NotImplementedError

    def fields_of(self, payload: Any) -> Dict[str, Any]:
        raise NotImplementedError

    def encode(self, payload: Any) -> Dict[str, Any]:
        """Typed payload (or an already-plain mapping) -> document mapping."""
        if isinstance(payload, dict):
            missing = [spec.name for spec in self.schema if spec.name not in payload]
            if missing:
                raise InvalidPayload(
                    f"{self.step_id.value} payload is missing {', '.join(missing)}"
                )
            try:
                payload = self.build(payload)
            except (TypeError, ValueError) as exc:
                raise InvalidPayload(str(exc)) from exc
        if not isinstance(payload, self.payload_type):
            raise UnsupportedValueType(
                f"{self.step_id.value} expects {self.payload_type.__name__}, "
                f"got {type(payload).__name__}"
            )
        return encode_mapping(self.fields_of(payload))

    def decode(self, raw: Optional[Dict[str, Any]]) -> DecodeResult:
        """Document mapping -> typed payload, substituting defaults."""
        values, defaulted = _read_fields(self.schema, raw)
        if defaulted:
            logger.debug(
                "Decoded %s payload with defaults for %s",
                self.step_id.value, ", ".join(defaulted),
            )
        return DecodeResult(payload=self.build(values), defaulted_fields=defaulted)


def _within_day(minutes: int) -> bool:
    return 0 <= minutes < MINUTES_PER_DAY


class BlockScheduleStep(StepDefinition):
    step_id = StepID.BLOCK_SCHEDULE
    payload_type = BlockSchedule
    schema = (
        FieldSpec("startMinutes", "integer", 0, valid=_within_day),
        FieldSpec("endMinutes", "integer", 0, valid=_within_day),
    )

    def __init__(self, draft_start: int = 21 * 60, draft_end: int = 7 * 60):
        self._draft = BlockSchedule(start_minutes=draft_start, end_minutes=draft_end)

    def default_draft(self) -> BlockSchedule:
        return self._draft

    def build(self, values: Dict[str, Any]) -> BlockSchedule:
        return BlockSchedule(
            start_minutes=values["startMinutes"],
            end_minutes=values["endMinutes"],
        )

    def fields_of(self, payload: BlockSchedule) -> Dict[str, Any]:
        return {
            "startMinutes": payload.start_minutes,
            "endMinutes": payload.end_minutes,
        }


class AppSelectionStep(StepDefinition):
    step_id = StepID.APP_SELECTION
    payload_type = AppSelection
    schema = (
        FieldSpec("appTokens", "sequence", []),
        FieldSpec("categoryTokens", "sequence", []),
    )

    def build(self, values: Dict[str, Any]) -> AppSelection:
        return AppSelection(
            app_tokens=tuple(t for t in values["appTokens"] if isinstance(t, str)),
            category_tokens=tuple(t for t in values["categoryTokens"] if isinstance(t, str)),
        )

    def fields_of(self, payload: AppSelection) -> Dict[str, Any]:
        return {
            "appTokens": list(payload.app_tokens),
            "categoryTokens": list(payload.category_tokens),
        }


# ============================================================
# REGISTRY
# ============================================================

_STEP_TYPES: Dict[str, Callable[[], StepDefinition]] = {
    StepID.BLOCK_SCHEDULE.value: BlockScheduleStep,
    StepID.APP_SELECTION.value: AppSelectionStep,
}

DEFAULT_STEP_SEQUENCE: Tuple[str, ...] = (
    StepID.BLOCK_SCHEDULE.value,
    StepID.APP_SELECTION.value,
)


def get_step(step_id: str) -> StepDefinition:
    """
    Look up a step definition by identifier.

    Raises:
        UnknownStep: if no definition is registered for step_id
    """
    key = step_id.value if isinstance(step_id, StepID) else step_id
    factory = _STEP_TYPES.get(key)
    if factory is None:
        raise UnknownStep(f"Unknown setup step: {step_id}")
    return factory()


class StepCatalog:
    """
    The ordered step sequence of one setup flow.

    Example:
        catalog = StepCatalog(["blockSchedule", "appSelection"])
        catalog.next_step("blockSchedule")   # "appSelection"
        catalog.next_step("appSelection")    # None
    """

    def __init__(
        self,
        sequence: Tuple[str, ...] = DEFAULT_STEP_SEQUENCE,
        default_schedule: Optional[BlockSchedule] = None,
    ):
        if not sequence:
            raise UnknownStep("At least one setup step is required")
        self.sequence: Tuple[str, ...] = tuple(
            s.value if isinstance(s, StepID) else s for s in sequence
        )
        if len(set(self.sequence)) != len(self.sequence):
            raise UnknownStep(f"Setup steps must be unique: {list(self.sequence)}")
        self._definitions: Dict[str, StepDefinition] = {}
        for step_id in self.sequence:
            definition = get_step(step_id)
            if default_schedule is not None and isinstance(definition, BlockScheduleStep):
                definition = BlockScheduleStep(
                    draft_start=default_schedule.start_minutes,
                    draft_end=default_schedule.end_minutes,
                )
            self._definitions[step_id] = definition

    def __len__(self) -> int:
        return len(self.sequence)

    def __contains__(self, step_id: str) -> bool:
        return step_id in self._definitions

    @property
    def first(self) -> str:
        return self.sequence[0]

    def get(self, step_id: str) -> StepDefinition:
        definition = self._definitions.get(step_id)
        if definition is None:
            raise UnknownStep(f"Step {step_id!r} is not part of this setup flow")
        return definition

    def index_of(self, step_id: str) -> int:
        try:
            return self.sequence.index(step_id)
        except ValueError:
            raise UnknownStep(f"Step {step_id!r} is not part of this setup flow") from None

    def next_step(self, step_id: str) -> Optional[str]:
        index = self.index_of(step_id)
        if index + 1 < len(self.sequence):
            return self.sequence[index + 1]
        return None

    def is_last(self, step_id: str) -> bool:
        return self.next_step(step_id) is None
