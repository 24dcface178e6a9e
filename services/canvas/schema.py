from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

CIRCLE = "circle"
RECTANGLE = "rectangle"
LINE = "line"
POLYGON = "polygon"
TEXT = "text"
IMAGE = "image"

ELEMENT_TYPES = (CIRCLE, RECTANGLE, LINE, POLYGON, TEXT, IMAGE)

DEFAULT_IMAGE_URL = "/logo.jpg"

# Keys owned by the store; never taken from a create or update payload.
RESERVED_KEYS = frozenset({"id", "type", "variant", "selected"})

SHARED_DEFAULTS: dict[str, Any] = {
    "position": [0, 0, 0],
    "rotation": [0, 0, 0],
    "scale": [1, 1, 1],
    "color": "#ffffff",
    "opacity": 1,
}


@dataclass(frozen=True)
class VariantSpec:
    element_type: str
    required: tuple[str, ...]
    optional: tuple[str, ...]
    defaults: dict[str, Any]
    min_points: int = 0

    @property
    def fields(self) -> tuple[str, ...]:
        return self.required + self.optional


_VARIANTS: dict[str, VariantSpec] = {
    CIRCLE: VariantSpec(
        element_type=CIRCLE,
        required=("radius",),
        optional=("segments", "filled", "lineWidth"),
        defaults={"radius": 1, "filled": True, "lineWidth": 1},
    ),
    RECTANGLE: VariantSpec(
        element_type=RECTANGLE,
        required=("width", "height"),
        optional=("filled", "lineWidth"),
        defaults={"width": 2, "height": 1, "filled": True, "lineWidth": 1},
    ),
    LINE: VariantSpec(
        element_type=LINE,
        required=("points",),
        optional=("lineWidth",),
        defaults={"points": [[0, 0, 0], [1, 1, 0]], "lineWidth": 1},
        min_points=2,
    ),
    POLYGON: VariantSpec(
        element_type=POLYGON,
        required=("points",),
        optional=("filled", "lineWidth"),
        defaults={
            "points": [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]],
            "filled": True,
            "lineWidth": 1,
        },
        min_points=3,
    ),
    TEXT: VariantSpec(
        element_type=TEXT,
        required=("text",),
        optional=("fontSize", "fontColor"),
        # fontColor falls back to the element color, resolved in build_element.
        defaults={"text": "Text", "fontSize": 1},
    ),
    IMAGE: VariantSpec(
        element_type=IMAGE,
        required=("url",),
        optional=("width", "height"),
        defaults={"url": DEFAULT_IMAGE_URL, "width": 3, "height": 2},
    ),
}


def get_variant(element_type: str | None) -> VariantSpec | None:
    return _VARIANTS.get(str(element_type or "").strip().lower())


def list_variants() -> list[dict[str, Any]]:
    return [
        {
            "element_type": spec.element_type,
            "required": list(spec.required),
            "optional": list(spec.optional),
            "defaults": copy.deepcopy(spec.defaults),
            "min_points": spec.min_points,
        }
        for spec in _VARIANTS.values()
    ]


def _pick(params: dict[str, Any], key: str, fallback: Any) -> Any:
    value = params.get(key)
    if value is None:
        return copy.deepcopy(fallback)
    return copy.deepcopy(value)


def build_element(
    element_type: str,
    params: dict[str, Any] | None = None,
    *,
    image_url: str | None = None,
) -> dict[str, Any]:
    """Build an id-less element of ``element_type`` from agent params.

    Fields absent from ``params`` (or explicitly null) take the variant's fixed
    default. Optional fields without a default are copied only when supplied.
    Keys outside the variant's field table are ignored. Raises ``KeyError``
    for an unknown element type.
    """
    spec = get_variant(element_type)
    if spec is None:
        raise KeyError(element_type)
    params = params if isinstance(params, dict) else {}

    element: dict[str, Any] = {"type": spec.element_type}
    for key, fallback in SHARED_DEFAULTS.items():
        element[key] = _pick(params, key, fallback)

    defaults = dict(spec.defaults)
    if spec.element_type == IMAGE and image_url:
        defaults["url"] = image_url
    if spec.element_type == TEXT:
        defaults["fontColor"] = element["color"]

    for key in spec.fields:
        if key in defaults:
            element[key] = _pick(params, key, defaults[key])
        elif params.get(key) is not None:
            element[key] = copy.deepcopy(params[key])
    return element


def strip_reserved(patch: dict[str, Any] | None) -> dict[str, Any]:
    if not isinstance(patch, dict):
        return {}
    return {key: copy.deepcopy(value) for key, value in patch.items() if key not in RESERVED_KEYS}


__all__ = [
    "CIRCLE",
    "DEFAULT_IMAGE_URL",
    "ELEMENT_TYPES",
    "IMAGE",
    "LINE",
    "POLYGON",
    "RECTANGLE",
    "RESERVED_KEYS",
    "SHARED_DEFAULTS",
    "TEXT",
    "VariantSpec",
    "build_element",
    "get_variant",
    "list_variants",
    "strip_reserved",
]
