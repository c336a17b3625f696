"""pytest configuration for SurfaceLink tests."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeWebSocket:
    """Minimal fake of a Starlette WebSocket fed from a queue."""

    def __init__(self, host: str = "10.0.0.5"):
        self.client = SimpleNamespace(host=host, port=51000)
        self.sent: list[dict] = []
        self.accepted = False
        self.closed = False
        self.fail_sends = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def receive(self) -> dict:
        return await self._inbox.get()

    async def send_json(self, data: dict) -> None:
        if self.fail_sends or self.closed:
            raise RuntimeError("websocket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    # ── Scripting ──────────────────────────────────────────────────

    def push(self, command: str, arguments=None) -> None:
        self.push_text(json.dumps({"command": command, "arguments": arguments}))

    def push_text(self, text: str) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def commands(self, name: str) -> list[dict]:
        return [m for m in self.sent if m.get("command") == name]

    def responses(self, name: str) -> list[dict]:
        return [m for m in self.sent if m.get("response") == name]


async def settle(rounds: int = 20) -> None:
    """Let queued handler work run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)
