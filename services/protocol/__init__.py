from services.protocol.schema_validation import (
    CANVAS_COMMAND_SCHEMA,
    CANVAS_ELEMENT_SCHEMA,
    ProtocolValidationError,
    ProtocolValidator,
    default_validator,
)

__all__ = [
    "CANVAS_COMMAND_SCHEMA",
    "CANVAS_ELEMENT_SCHEMA",
    "ProtocolValidationError",
    "ProtocolValidator",
    "default_validator",
]
