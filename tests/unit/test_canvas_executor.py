from __future__ import annotations

from services.canvas.executor import (
    FAILURE_CODES,
    MISSING_ELEMENT_TYPE,
    MISSING_REFERENCE,
    NOT_FOUND,
    UNKNOWN_ELEMENT_TYPE,
    UNKNOWN_VERB,
    execute_command,
)
from services.canvas.parser import Command
from services.canvas.store import CanvasStore
from services.config.runtime_config import CanvasSettings


def _create(store: CanvasStore, element_type: str, **params) -> str:
    outcome = execute_command(store, Command(verb="create", element_type=element_type, params=params))
    assert outcome.ok
    assert outcome.element_id
    return outcome.element_id


def test_create_adds_exactly_one_element_with_fresh_id() -> None:
    store = CanvasStore()
    issued: set[str] = set()
    for element_type in ("circle", "rectangle", "line", "polygon", "text", "image"):
        before = len(store)
        element_id = _create(store, element_type)
        assert len(store) == before + 1
        assert element_id not in issued
        issued.add(element_id)
        assert store.get(element_id)["type"] == element_type


def test_create_without_type_fails_without_mutation() -> None:
    store = CanvasStore()
    outcome = execute_command(store, Command(verb="create"))
    assert outcome.ok is False
    assert outcome.error == MISSING_ELEMENT_TYPE
    assert outcome.element_id is None
    assert len(store) == 0
    assert store.revision == 0


def test_create_unknown_type_fails_without_mutation() -> None:
    store = CanvasStore()
    outcome = execute_command(store, Command(verb="create", element_type="hexagon"))
    assert outcome.error == UNKNOWN_ELEMENT_TYPE
    assert outcome.element_id is None
    assert len(store) == 0


def test_create_uses_configured_image_url() -> None:
    store = CanvasStore()
    settings = CanvasSettings(
        default_image_url="/static/brand.png",
        max_message_chars=1000,
        max_sessions=4,
        validate_block_shape=True,
        log_level="INFO",
    )
    outcome = execute_command(store, Command(verb="create", element_type="image"), settings)
    assert store.get(outcome.element_id)["url"] == "/static/brand.png"


def test_update_cannot_change_variant() -> None:
    store = CanvasStore()
    element_id = _create(store, "circle")
    outcome = execute_command(
        store,
        Command(verb="update", element_id=element_id, params={"type": "rectangle", "variant": "rectangle", "radius": 5}),
    )
    assert outcome.ok
    assert outcome.element_id == element_id
    element = store.get(element_id)
    assert element["type"] == "circle"
    assert "variant" not in element
    assert element["radius"] == 5


def test_update_missing_reference_and_not_found() -> None:
    store = CanvasStore()
    _create(store, "circle")
    revision = store.revision

    missing = execute_command(store, Command(verb="update", params={"color": "#00ff00"}))
    assert missing.error == MISSING_REFERENCE

    unknown = execute_command(store, Command(verb="update", element_id="bogus-id", params={"color": "#00ff00"}))
    assert unknown.ok is False
    assert unknown.error == NOT_FOUND
    assert unknown.element_id is None
    assert store.revision == revision


def test_delete_is_idempotent() -> None:
    store = CanvasStore()
    element_id = _create(store, "rectangle")
    _create(store, "circle")

    first = execute_command(store, Command(verb="delete", element_id=element_id))
    assert first.ok and first.element_id == element_id
    assert first.message == ""
    size_after_first = len(store)
    revision_after_first = store.revision

    second = execute_command(store, Command(verb="delete", element_id=element_id))
    assert second.ok and second.element_id == element_id
    assert second.message == f"element '{element_id}' was not present"
    assert second.to_payload()["message"] == second.message
    assert len(store) == size_after_first == 1
    assert store.revision == revision_after_first


def test_delete_without_reference_fails() -> None:
    outcome = execute_command(CanvasStore(), Command(verb="delete"))
    assert outcome.error == MISSING_REFERENCE


def test_select_switches_selection_and_deselect_clears() -> None:
    store = CanvasStore()
    a = _create(store, "circle")
    b = _create(store, "circle")

    assert execute_command(store, Command(verb="select", element_id=a)).element_id == a
    assert execute_command(store, Command(verb="select", element_id=b)).element_id == b
    assert store.selected_id == b
    assert [row["id"] for row in store.elements() if row["selected"]] == [b]

    outcome = execute_command(store, Command(verb="deselect"))
    assert outcome.ok and outcome.element_id is None
    assert store.selected_id is None
    assert not any(row["selected"] for row in store.elements())


def test_select_does_not_check_existence() -> None:
    store = CanvasStore()
    outcome = execute_command(store, Command(verb="select", element_id="ghost"))
    assert outcome.ok
    assert outcome.element_id == "ghost"
    assert store.selected_id == "ghost"


def test_select_without_reference_fails() -> None:
    outcome = execute_command(CanvasStore(), Command(verb="select"))
    assert outcome.error == MISSING_REFERENCE


def test_clear_returns_no_id_and_empties_store() -> None:
    store = CanvasStore()
    _create(store, "circle")
    _create(store, "text")
    outcome = execute_command(store, Command(verb="clear"))
    assert outcome.ok and outcome.element_id is None
    assert len(store) == 0


def test_unknown_verb_fails_without_mutation() -> None:
    store = CanvasStore()
    outcome = execute_command(store, Command(verb="explode", element_id="x"))
    assert outcome.ok is False
    assert outcome.error == UNKNOWN_VERB
    assert store.revision == 0


def test_failure_outcomes_only_use_known_codes() -> None:
    store = CanvasStore()
    commands = [
        Command(verb="create"),
        Command(verb="create", element_type="blob"),
        Command(verb="update", element_id="nope"),
        Command(verb="select"),
        Command(verb="teleport"),
    ]
    outcomes = [execute_command(store, command) for command in commands]
    assert all(not row.ok for row in outcomes)
    assert {row.error for row in outcomes} <= set(FAILURE_CODES)
    assert all(row.to_payload()["message"] for row in outcomes)
