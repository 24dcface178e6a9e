from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from services.canvas.parser import Command
from services.canvas.schema import build_element, get_variant, strip_reserved
from services.canvas.store import CanvasStore
from services.config.runtime_config import CanvasSettings

logger = logging.getLogger("livecanvas.executor")

MALFORMED_COMMAND = "malformed_command"
UNKNOWN_VERB = "unknown_verb"
UNKNOWN_ELEMENT_TYPE = "unknown_element_type"
MISSING_ELEMENT_TYPE = "missing_element_type"
MISSING_REFERENCE = "missing_reference"
NOT_FOUND = "not_found"

FAILURE_CODES = (
    MALFORMED_COMMAND,
    UNKNOWN_VERB,
    UNKNOWN_ELEMENT_TYPE,
    MISSING_ELEMENT_TYPE,
    MISSING_REFERENCE,
    NOT_FOUND,
)


@dataclass
class CommandError(RuntimeError):
    code: str
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class CommandOutcome:
    verb: str
    ok: bool
    element_id: str | None = None
    error: str | None = None
    message: str = ""

    @staticmethod
    def success(verb: str, element_id: str | None = None, message: str = "") -> "CommandOutcome":
        return CommandOutcome(verb=verb, ok=True, element_id=element_id, message=message)

    @staticmethod
    def failure(verb: str, code: str, message: str) -> "CommandOutcome":
        return CommandOutcome(verb=verb, ok=False, error=code, message=message)

    def to_payload(self) -> dict[str, Any]:
        return {
            "verb": self.verb,
            "ok": self.ok,
            "element_id": self.element_id,
            "error": self.error,
            "message": self.message,
        }


def _require_id(command: Command) -> str:
    if not command.element_id:
        raise CommandError(
            code=MISSING_REFERENCE,
            message=f"elementId is required for {command.verb} command",
            detail={"verb": command.verb},
        )
    return command.element_id


def _create(store: CanvasStore, command: Command, settings: CanvasSettings | None) -> str:
    if not command.element_type:
        raise CommandError(
            code=MISSING_ELEMENT_TYPE,
            message="elementType is required for create command",
            detail={"verb": command.verb},
        )
    if get_variant(command.element_type) is None:
        raise CommandError(
            code=UNKNOWN_ELEMENT_TYPE,
            message=f"unknown element type '{command.element_type}'",
            detail={"element_type": command.element_type},
        )
    image_url = settings.default_image_url if settings else None
    element = build_element(command.element_type, command.params, image_url=image_url)
    return store.add(element)


def _update(store: CanvasStore, command: Command) -> str:
    element_id = _require_id(command)
    if not store.contains(element_id):
        raise CommandError(
            code=NOT_FOUND,
            message=f"element '{element_id}' was not found",
            detail={"element_id": element_id},
        )
    store.update(element_id, strip_reserved(command.params))
    return element_id


def _apply(store: CanvasStore, command: Command, settings: CanvasSettings | None) -> CommandOutcome:
    verb = command.verb

    if verb == "create":
        return CommandOutcome.success(verb, _create(store, command, settings))

    if verb == "update":
        return CommandOutcome.success(verb, _update(store, command))

    if verb == "delete":
        element_id = _require_id(command)
        if not store.contains(element_id):
            # Idempotent: a repeat delete succeeds without touching the store.
            return CommandOutcome.success(verb, element_id, message=f"element '{element_id}' was not present")
        store.remove(element_id)
        return CommandOutcome.success(verb, element_id)

    if verb == "clear":
        store.clear_all()
        return CommandOutcome.success(verb)

    if verb == "select":
        element_id = _require_id(command)
        store.select_element(element_id)
        return CommandOutcome.success(verb, element_id)

    if verb == "deselect":
        store.clear_selection()
        return CommandOutcome.success(verb)

    raise CommandError(
        code=UNKNOWN_VERB,
        message=f"unknown command '{verb}'",
        detail={"verb": verb},
    )


def execute_command(
    store: CanvasStore,
    command: Command,
    settings: CanvasSettings | None = None,
) -> CommandOutcome:
    """Apply one command to ``store``.

    Failures come back as outcomes with an ``error`` code; nothing raises past
    this function.
    """
    try:
        return _apply(store, command, settings)
    except CommandError as exc:
        logger.warning("Executor: %s failed (%s): %s", command.verb or "<empty>", exc.code, exc.message)
        return CommandOutcome.failure(command.verb, exc.code, exc.message)


__all__ = [
    "FAILURE_CODES",
    "MALFORMED_COMMAND",
    "MISSING_ELEMENT_TYPE",
    "MISSING_REFERENCE",
    "NOT_FOUND",
    "UNKNOWN_ELEMENT_TYPE",
    "UNKNOWN_VERB",
    "CommandError",
    "CommandOutcome",
    "execute_command",
]
