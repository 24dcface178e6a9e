from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from services.canvas.executor import MALFORMED_COMMAND, CommandOutcome, execute_command
from services.canvas.parser import Command, parse_canvas_commands_with_report
from services.canvas.store import CanvasStore
from services.config.runtime_config import CanvasSettings

logger = logging.getLogger("livecanvas.processor")


@dataclass
class MessageReport:
    commands: list[Command] = field(default_factory=list)
    outcomes: list[CommandOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    scene: dict[str, Any] = field(default_factory=dict)

    @property
    def failures(self) -> list[CommandOutcome]:
        return [row for row in self.outcomes if not row.ok]

    def to_payload(self) -> dict[str, Any]:
        return {
            "command_count": len(self.commands),
            "commands": [command.to_payload() for command in self.commands],
            "outcomes": [outcome.to_payload() for outcome in self.outcomes],
            "warnings": [{"error": MALFORMED_COMMAND, "detail": warning} for warning in self.warnings],
            "scene": self.scene,
        }


def process_commands(
    store: CanvasStore,
    commands: Iterable[Command],
    settings: CanvasSettings | None = None,
) -> list[CommandOutcome]:
    # Every command is attempted; a failure never stops the rest of the batch.
    return [execute_command(store, command, settings) for command in commands]


def process_message_with_report(
    store: CanvasStore,
    message: str,
    settings: CanvasSettings | None = None,
) -> MessageReport:
    validate_shape = settings.validate_block_shape if settings else True
    parsed = parse_canvas_commands_with_report(message, validate_shape=validate_shape)
    outcomes = process_commands(store, parsed.commands, settings)
    report = MessageReport(
        commands=parsed.commands,
        outcomes=outcomes,
        warnings=parsed.warnings,
        scene=store.summary(),
    )
    if parsed.commands or parsed.warnings:
        logger.info(
            "Processor: %d command(s), %d failed, %d warning(s), revision %d",
            len(parsed.commands),
            len(report.failures),
            len(parsed.warnings),
            store.revision,
        )
    return report


def process_message(
    store: CanvasStore,
    message: str,
    settings: CanvasSettings | None = None,
) -> list[CommandOutcome]:
    return process_message_with_report(store, message, settings).outcomes


__all__ = [
    "MessageReport",
    "process_commands",
    "process_message",
    "process_message_with_report",
]
