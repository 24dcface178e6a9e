from __future__ import annotations

from services.canvas.parser import (
    parse_block_commands,
    parse_canvas_commands,
    parse_canvas_commands_with_report,
    parse_inline_commands,
)

FENCE = "```"


def test_text_without_commands_parses_to_empty_list() -> None:
    assert parse_canvas_commands("Sure, a circle would look great there.") == []
    assert parse_canvas_commands("") == []


def test_inline_create_with_json_params() -> None:
    commands = parse_canvas_commands(
        '/canvas create circle {"radius": 2, "position": [0,0,0], "color": "#ff0000"}'
    )
    assert len(commands) == 1
    command = commands[0]
    assert command.verb == "create"
    assert command.element_type == "circle"
    assert command.element_id is None
    assert command.params == {"radius": 2, "position": [0, 0, 0], "color": "#ff0000"}


def test_inline_commands_found_inside_prose_one_per_line() -> None:
    message = """
    Let me create some shapes for you:

    /canvas create circle {"radius": 2, "color": "#ff0000"}
    /canvas create rectangle {"width": 3, "height": 2}
    Then I'll tidy up. /canvas deselect
    """
    commands = parse_inline_commands(message)
    assert [(c.verb, c.element_type) for c in commands] == [
        ("create", "circle"),
        ("create", "rectangle"),
        ("deselect", None),
    ]


def test_inline_verb_and_type_are_case_insensitive() -> None:
    commands = parse_canvas_commands("/CANVAS Create Circle")
    assert commands[0].verb == "create"
    assert commands[0].element_type == "circle"


def test_inline_non_json_tail_becomes_text_param() -> None:
    commands = parse_canvas_commands("/canvas create text Hello there, world")
    assert commands[0].element_type == "text"
    assert commands[0].params == {"text": "Hello there, world"}


def test_inline_json_that_is_not_an_object_becomes_text_param() -> None:
    commands = parse_canvas_commands("/canvas create text 42")
    assert commands[0].params == {"text": "42"}


def test_inline_broken_json_never_raises() -> None:
    commands = parse_canvas_commands('/canvas create circle {"radius": 2,')
    assert commands[0].params == {"text": '{"radius": 2,'}


def test_inline_target_is_element_id_for_non_create_verbs() -> None:
    commands = parse_canvas_commands(
        '/canvas update bogus-id {"color": "#00ff00"}\n/canvas delete 3f2a-9c\n/canvas select abc-123.'
    )
    assert [(c.verb, c.element_id) for c in commands] == [
        ("update", "bogus-id"),
        ("delete", "3f2a-9c"),
        ("select", "abc-123"),
    ]
    assert commands[0].params == {"color": "#00ff00"}
    assert commands[0].element_type is None


def test_inline_ids_keep_their_case() -> None:
    commands = parse_canvas_commands("/canvas select Node-A1")
    assert commands[0].element_id == "Node-A1"


def test_inline_reference_can_come_from_json_tail() -> None:
    commands = parse_canvas_commands(
        '/canvas update {"elementId": "abc", "color": "#00ff00"}\n/canvas create {"elementType": "image", "width": 4}'
    )
    assert commands[0].element_id == "abc"
    assert commands[0].params == {"color": "#00ff00"}
    assert commands[1].element_type == "image"
    assert commands[1].params == {"width": 4}


def test_inline_clear_has_no_target() -> None:
    commands = parse_canvas_commands("/canvas clear")
    assert commands[0].verb == "clear"
    assert commands[0].element_id is None
    assert commands[0].params == {}


def test_fenced_array_yields_commands_in_order() -> None:
    message = (
        "Here you go:\n"
        f"{FENCE}json\n"
        '[{"command":"create","elementType":"text","params":{"text":"Hi"}}, {"command":"clear"}]\n'
        f"{FENCE}\n"
    )
    commands = parse_canvas_commands(message)
    assert [c.verb for c in commands] == ["create", "clear"]
    assert commands[0].element_type == "text"
    assert commands[0].params == {"text": "Hi"}
    assert all(c.source == "block" for c in commands)


def test_fenced_single_object_with_command() -> None:
    message = (
        f"{FENCE}\n"
        '{"command": "update", "elementId": "e-1", "params": {"color": "#fff000"}}\n'
        f"{FENCE}"
    )
    commands = parse_canvas_commands(message)
    assert len(commands) == 1
    assert commands[0].verb == "update"
    assert commands[0].element_id == "e-1"


def test_fenced_language_tag_is_ignored() -> None:
    message = f'{FENCE}javascript\n{{"command": "deselect"}}\n{FENCE}'
    assert [c.verb for c in parse_canvas_commands(message)] == ["deselect"]


def test_inline_results_come_before_block_results() -> None:
    message = (
        f'{FENCE}json\n[{{"command": "clear"}}]\n{FENCE}\n'
        "/canvas create circle\n"
    )
    assert [c.verb for c in parse_canvas_commands(message)] == ["create", "clear"]


def test_only_first_fenced_block_is_considered() -> None:
    message = (
        f'{FENCE}json\n{{"command": "clear"}}\n{FENCE}\n'
        "and another\n"
        f'{FENCE}json\n{{"command": "deselect"}}\n{FENCE}\n'
    )
    assert [c.verb for c in parse_canvas_commands(message)] == ["clear"]


def test_malformed_block_is_dropped_but_inline_survives() -> None:
    message = (
        "/canvas create circle\n"
        f'{FENCE}json\n[{{"command": "create", }}]\n{FENCE}\n'
    )
    report = parse_canvas_commands_with_report(message)
    assert [c.verb for c in report.commands] == ["create"]
    assert report.warnings == ["malformed_block_json"]


def test_object_without_command_field_drops_block() -> None:
    report = parse_block_commands(f'{FENCE}json\n{{"radius": 2}}\n{FENCE}')
    assert report.commands == []
    assert report.warnings == ["unsupported_block_payload"]


def test_array_entries_are_shape_validated_not_content_validated() -> None:
    message = (
        f"{FENCE}json\n"
        '[{"command": "explode"}, 7, {"command": "create", "params": "nope"}, {"elementType": "circle"}]\n'
        f"{FENCE}"
    )
    report = parse_block_commands(message)
    assert [c.verb for c in report.commands] == ["explode"]
    assert report.warnings == ["block_entry_invalid:1", "block_entry_invalid:2", "block_entry_invalid:3"]


def test_shape_validation_can_be_disabled() -> None:
    message = f'{FENCE}json\n[{{"command": "create", "elementType": "circle", "params": "nope"}}, 7]\n{FENCE}'
    report = parse_block_commands(message, validate_shape=False)
    assert len(report.commands) == 1
    assert report.commands[0].params == {}
    assert report.warnings == ["block_entry_invalid:1"]


def test_command_payload_round_trip_uses_wire_names() -> None:
    command = parse_canvas_commands("/canvas update abc {\"color\": \"#000000\"}")[0]
    assert command.to_payload() == {"command": "update", "elementId": "abc", "params": {"color": "#000000"}}
