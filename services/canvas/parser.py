from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from services.protocol import CANVAS_COMMAND_SCHEMA, ProtocolValidationError, ProtocolValidator, default_validator

logger = logging.getLogger("livecanvas.parser")

VERBS = ("create", "update", "delete", "clear", "select", "deselect")

# "/canvas <verb> [<target>] [<tail>]"; the target never starts with a JSON opener.
INLINE_COMMAND_RE = re.compile(
    r"/canvas\s+(\w+)(?:\s+(?![\[{])([\w.:-]+))?(?:\s+(.+))?",
    re.IGNORECASE,
)
# First fenced block whose body opens with an array or object; language tag ignored.
FENCED_BLOCK_RE = re.compile(r"```[\w+-]*\s*([\[{][\s\S]*?[\]}])\s*```")

_TARGET_TRAILING = ".,;:"


@dataclass(frozen=True)
class Command:
    verb: str
    element_type: str | None = None
    element_id: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    source: str = "inline"

    @classmethod
    def from_payload(cls, payload: dict[str, Any], source: str = "block") -> "Command":
        element_type = payload.get("elementType")
        element_id = payload.get("elementId")
        params = payload.get("params")
        return cls(
            verb=str(payload.get("command", "")).strip().lower(),
            element_type=str(element_type).strip().lower() if element_type else None,
            element_id=str(element_id).strip() if element_id else None,
            params=dict(params) if isinstance(params, dict) else {},
            source=source,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"command": self.verb, "params": dict(self.params)}
        if self.element_type is not None:
            payload["elementType"] = self.element_type
        if self.element_id is not None:
            payload["elementId"] = self.element_id
        return payload


@dataclass
class ParseReport:
    commands: list[Command] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _parse_tail(tail: str) -> dict[str, Any]:
    try:
        value = json.loads(tail)
    except json.JSONDecodeError:
        return {"text": tail}
    if isinstance(value, dict):
        return value
    return {"text": tail}


def _lift(params: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value.strip():
            params.pop(key)
            return value.strip()
    return None


def _parse_inline_line(line: str) -> Command | None:
    match = INLINE_COMMAND_RE.search(line)
    if not match:
        return None
    verb, target, tail = match.groups()
    verb = verb.lower()
    target = target.rstrip(_TARGET_TRAILING) if target else None
    tail = (tail or "").strip()
    params = _parse_tail(tail) if tail else {}

    if verb == "create":
        element_type = target.lower() if target else _lift(params, ("elementType", "type"))
        return Command(verb=verb, element_type=element_type or None, params=params, source="inline")
    element_id = target or _lift(params, ("elementId", "id"))
    return Command(verb=verb, element_id=element_id or None, params=params, source="inline")


def parse_inline_commands(text: str) -> list[Command]:
    commands: list[Command] = []
    for line in str(text or "").splitlines():
        command = _parse_inline_line(line)
        if command is not None:
            commands.append(command)
    return commands


def _shape_ok(
    entry: Any,
    validator: ProtocolValidator | None,
) -> bool:
    if not isinstance(entry, dict):
        return False
    if validator is None:
        return bool(str(entry.get("command", "")).strip())
    try:
        validator.validate(CANVAS_COMMAND_SCHEMA, entry)
    except ProtocolValidationError as exc:
        logger.debug("Parser: block entry rejected: %s", exc.issues)
        return False
    return True


def parse_block_commands(
    text: str,
    *,
    validate_shape: bool = True,
    validator: ProtocolValidator | None = None,
) -> ParseReport:
    """Extract commands from the first fenced JSON block in ``text``.

    An array yields one command per shape-valid entry; an object yields one
    command when it carries ``command``. Anything else drops the block. Later
    fenced blocks are never looked at.
    """
    report = ParseReport()
    match = FENCED_BLOCK_RE.search(str(text or ""))
    if not match:
        return report

    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        logger.warning("Parser: dropped fenced block with malformed JSON: %s", exc)
        report.warnings.append("malformed_block_json")
        return report

    shape_validator = (validator or default_validator()) if validate_shape else None

    if isinstance(data, list):
        for idx, entry in enumerate(data):
            if not _shape_ok(entry, shape_validator):
                logger.warning("Parser: dropped fenced block entry %d with invalid shape", idx)
                report.warnings.append(f"block_entry_invalid:{idx}")
                continue
            report.commands.append(Command.from_payload(entry, source="block"))
        return report

    if isinstance(data, dict) and data.get("command"):
        if _shape_ok(data, shape_validator):
            report.commands.append(Command.from_payload(data, source="block"))
        else:
            logger.warning("Parser: dropped fenced block command with invalid shape")
            report.warnings.append("block_entry_invalid:0")
        return report

    logger.warning("Parser: dropped fenced block that is neither a command nor a command list")
    report.warnings.append("unsupported_block_payload")
    return report


def parse_canvas_commands_with_report(
    text: str,
    *,
    validate_shape: bool = True,
    validator: ProtocolValidator | None = None,
) -> ParseReport:
    inline = parse_inline_commands(text)
    block = parse_block_commands(text, validate_shape=validate_shape, validator=validator)
    return ParseReport(commands=inline + block.commands, warnings=block.warnings)


def parse_canvas_commands(
    text: str,
    *,
    validate_shape: bool = True,
    validator: ProtocolValidator | None = None,
) -> list[Command]:
    return parse_canvas_commands_with_report(text, validate_shape=validate_shape, validator=validator).commands


__all__ = [
    "Command",
    "ParseReport",
    "VERBS",
    "parse_block_commands",
    "parse_canvas_commands",
    "parse_canvas_commands_with_report",
    "parse_inline_commands",
]
