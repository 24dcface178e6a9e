from services.canvas.executor import CommandError, CommandOutcome, execute_command
from services.canvas.parser import Command, ParseReport, parse_canvas_commands, parse_canvas_commands_with_report
from services.canvas.processor import MessageReport, process_commands, process_message, process_message_with_report
from services.canvas.schema import ELEMENT_TYPES, build_element, list_variants
from services.canvas.store import CanvasStore, CanvasStoreRegistry, SceneSnapshot

__all__ = [
    "CanvasStore",
    "CanvasStoreRegistry",
    "Command",
    "CommandError",
    "CommandOutcome",
    "ELEMENT_TYPES",
    "MessageReport",
    "ParseReport",
    "SceneSnapshot",
    "build_element",
    "execute_command",
    "list_variants",
    "parse_canvas_commands",
    "parse_canvas_commands_with_report",
    "process_commands",
    "process_message",
    "process_message_with_report",
]
