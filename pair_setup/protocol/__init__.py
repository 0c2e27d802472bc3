# protocol - Structured Setup Data
# Document schema, step payload schemas and the value codec
from .document import SetupDocument, field_path, initial_fields
from .steps import (
    AppSelection,
    BlockSchedule,
    DEFAULT_STEP_SEQUENCE,
    DecodeResult,
    FieldSpec,
    StepCatalog,
    StepDefinition,
    StepID,
    get_step,
)
from .values import Value, copy_plain, from_value, to_value

__all__ = [
    "AppSelection",
    "BlockSchedule",
    "DEFAULT_STEP_SEQUENCE",
    "DecodeResult",
    "FieldSpec",
    "SetupDocument",
    "StepCatalog",
    "StepDefinition",
    "StepID",
    "Value",
    "copy_plain",
    "field_path",
    "from_value",
    "get_step",
    "initial_fields",
    "to_value",
]
