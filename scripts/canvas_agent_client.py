#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import dataclass

import httpx
import websockets

DEFAULT_MESSAGE = (
    "Here is a small scene:\n"
    '/canvas create circle {"radius": 2, "position": [0, 0, 0], "color": "#ff0000"}\n'
    '/canvas create text {"text": "Hello, Canvas!", "position": [0, -3, 0]}\n'
)

# One element of every variant, laid out so none overlap.
DEMO_COMMANDS = [
    {"command": "clear"},
    {
        "command": "create",
        "elementType": "circle",
        "params": {"position": [0, 0, 0], "color": "#ff0000", "radius": 2, "filled": True},
    },
    {
        "command": "create",
        "elementType": "rectangle",
        "params": {"position": [5, 0, 0], "color": "#00ff00", "width": 3, "height": 2, "filled": True},
    },
    {
        "command": "create",
        "elementType": "line",
        "params": {"position": [-5, 0, 0], "color": "#0000ff", "points": [[0, 0, 0], [0, 3, 0], [3, 3, 0]], "lineWidth": 2},
    },
    {
        "command": "create",
        "elementType": "polygon",
        "params": {
            "position": [0, 5, 0],
            "color": "#ffff00",
            "points": [[0, 0, 0], [2, 0, 0], [2, 2, 0], [0, 2, 0]],
            "filled": True,
        },
    },
    {
        "command": "create",
        "elementType": "text",
        "params": {"position": [0, -5, 0], "text": "Hello, Canvas!", "fontSize": 1},
    },
    {
        "command": "create",
        "elementType": "image",
        "params": {"position": [-8, -5, 0], "url": "/logo.jpg", "width": 6, "height": 2},
    },
]


def build_demo_message() -> str:
    return "Seeding the demo scene:\n```json\n" + json.dumps(DEMO_COMMANDS, indent=2) + "\n```\n"


@dataclass
class MessageResult:
    session_id: str
    element_ids: list[str]
    failures: list[str]
    revision: int
    element_count: int


async def run_agent_message(
    gateway: str,
    session_id: str,
    message: str,
    api_key: str,
    timeout_s: float,
) -> MessageResult:
    gateway = gateway.rstrip("/")
    ws_url = gateway.replace("http://", "ws://").replace("https://", "wss://")
    ws_url = f"{ws_url}/v1/canvas/sessions/{session_id}/ws"
    headers = {"x-api-key": api_key} if api_key else {}
    if api_key:
        ws_url = f"{ws_url}?api_key={api_key}"

    async with websockets.connect(ws_url) as ws:
        initial = await _wait_for_event(ws, "canvas.scene", min_revision=0, timeout_s=timeout_s)
        start_revision = int(initial.get("payload", {}).get("revision", 0))

        async with httpx.AsyncClient(timeout=30, headers=headers) as client:
            response = await client.post(
                f"{gateway}/v1/canvas/sessions/{session_id}/messages",
                json={"text": message},
            )
            response.raise_for_status()
            report = response.json()

        target_revision = int(report.get("scene", {}).get("revision", start_revision))
        scene_event = initial
        if target_revision > start_revision:
            scene_event = await _wait_for_event(ws, "canvas.scene", min_revision=target_revision, timeout_s=timeout_s)

    outcomes = report.get("outcomes", [])
    scene = scene_event.get("payload", {})
    return MessageResult(
        session_id=report.get("session_id", session_id),
        element_ids=[row["element_id"] for row in outcomes if row.get("ok") and row.get("element_id")],
        failures=[f"{row.get('verb')}:{row.get('error')}" for row in outcomes if not row.get("ok")],
        revision=int(scene.get("revision", 0)),
        element_count=len(scene.get("elements", [])),
    )


async def _wait_for_event(
    ws: websockets.WebSocketClientProtocol,
    event_type: str,
    min_revision: int,
    timeout_s: float,
) -> dict:
    async def _recv() -> dict:
        while True:
            message = await ws.recv()
            try:
                event = json.loads(message)
            except json.JSONDecodeError:
                continue
            if event.get("event_type") != event_type:
                continue
            if int(event.get("payload", {}).get("revision", 0)) < min_revision:
                continue
            return event

    return await asyncio.wait_for(_recv(), timeout=timeout_s)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="LiveCanvas REST + WS agent example client")
    parser.add_argument("--gateway", default="http://127.0.0.1:8000", help="Gateway base URL")
    parser.add_argument("--session", default="agent-session-demo", help="Session ID")
    parser.add_argument("--message", default=DEFAULT_MESSAGE, help="Agent text containing canvas commands")
    parser.add_argument(
        "--seed-demo",
        action="store_true",
        help="Replace the scene with one element of every variant (ignores --message)",
    )
    parser.add_argument("--api-key", default="", help="API key when the gateway enforces one")
    parser.add_argument("--timeout", type=float, default=10.0, help="WS wait timeout in seconds")
    return parser


def main() -> None:
    args = build_arg_parser().parse_args()
    result = asyncio.run(
        run_agent_message(
            gateway=args.gateway,
            session_id=args.session,
            message=build_demo_message() if args.seed_demo else args.message,
            api_key=args.api_key,
            timeout_s=args.timeout,
        )
    )

    print("message applied:")
    print(f"  session_id: {result.session_id}")
    print(f"  revision: {result.revision}")
    print(f"  element_count: {result.element_count}")
    print(f"  created_or_touched: {', '.join(result.element_ids) or '-'}")
    print(f"  failures: {', '.join(result.failures) or '-'}")


if __name__ == "__main__":
    main()
