"""WebSocket service for remote virtual surfaces.

A plugin connects, negotiates a protocol version and registers itself as a
surface.  Version 1 clients pull their configuration; version 2 clients
subscribe to individual buttons and get their images pushed:

  Connected ──version{1}──▶ V1 active ──new_device──▶ registered (get_instances)
      │
      └──version{0,2}──▶ V2 awaiting device ──new_device──▶ V2 subscribed
                                                    (request_button / unrequest_button)

A ``version`` above 2 is answered with an error and the connection closed.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from surfacelink import __version__
from surfacelink.graphics import BankInvalidations, Renderer
from surfacelink.grid import bank_to_key, key_to_bank
from surfacelink.protocol import (
    MAX_PROTOCOL_VERSION,
    ButtonArgs,
    Frame,
    command,
    device_id_argument,
    encode_buffer,
    parse_args,
    parse_frame,
    requested_version,
    response,
)
from surfacelink.store import MappingStore
from surfacelink.surfaces import PLUGIN_KIND, SurfaceRegistry

logger = logging.getLogger(__name__)

DEFAULT_PORT = 28492
DEVICE_ID_PREFIX = "elgato_plugin-"

CommandListener = Callable[[Any], Awaitable[None]]
StartupListener = Callable[[str, "SurfaceSession"], Awaitable[None] | None]


def _numeric_version(version: Any) -> Any:
    """Read numeric strings such as ``"3"`` as numbers; leave anything else."""
    if isinstance(version, str):
        try:
            number = float(version.strip())
        except ValueError:
            return version
        return int(number) if number.is_integer() else number
    return version


class SessionState(enum.Enum):
    CONNECTED = "connected"
    V1_ACTIVE = "v1_active"
    V2_AWAITING_DEVICE = "v2_awaiting_device"
    V2_SUBSCRIBED = "v2_subscribed"
    CLOSED = "closed"


class Subscriptions:
    """Buttons a V2 session wants pushed, as ``page -> set of banks``.

    ``dynamic`` holds what the client requested; ``static`` holds buttons
    pinned on its behalf, which ``unrequest_button`` does not remove.
    """

    def __init__(self) -> None:
        self.dynamic: dict[int, set[int]] = {}
        self.static: dict[int, set[int]] = {}

    def add(self, page: int, bank: int, static: bool = False) -> None:
        target = self.static if static else self.dynamic
        target.setdefault(page, set()).add(bank)

    def remove(self, page: int, bank: int) -> None:
        banks = self.dynamic.get(page)
        if banks is not None:
            banks.discard(bank)
            if not banks:
                del self.dynamic[page]

    def contains(self, page: int, bank: int) -> bool:
        return bank in self.dynamic.get(page, ()) or bank in self.static.get(page, ())

    def clear(self) -> None:
        self.dynamic.clear()
        self.static.clear()


class SurfaceSession:
    """Runtime state of one connection."""

    def __init__(self, websocket: WebSocket, remote_address: str) -> None:
        self.websocket = websocket
        self.remote_address = remote_address
        self.state = SessionState.CONNECTED
        self.version: int | None = None
        self.device_id: str | None = None
        self.subscriptions: Subscriptions | None = None
        self._listeners: dict[str, list[CommandListener]] = {}

    # ── Listeners ──────────────────────────────────────────────────

    def on(self, name: str, listener: CommandListener) -> None:
        """Route client command *name* to *listener* (used by surface drivers)."""
        self._listeners.setdefault(name, []).append(listener)

    def remove_listeners(self, *names: str) -> None:
        for name in names:
            self._listeners.pop(name, None)

    async def emit(self, name: str, arguments: Any) -> bool:
        listeners = self._listeners.get(name)
        if not listeners:
            return False
        for listener in list(listeners):
            await listener(arguments)
        return True

    # ── Sending ────────────────────────────────────────────────────

    async def send(self, message: dict) -> bool:
        """Send one JSON frame.  Failures are logged and not retried."""
        if self.state is SessionState.CLOSED:
            return False
        try:
            await self.websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning("Send to %s failed: %s", self.remote_address, e)
            return False

    async def reply(self, name: str, arguments: dict[str, Any]) -> bool:
        return await self.send(response(name, arguments))

    async def send_command(self, name: str, arguments: dict[str, Any]) -> bool:
        return await self.send(command(name, arguments))


class PluginService:
    """Accepts plugin connections and keeps their button images current.

    Args:
        registry:      Surface registry to add/remove devices with.
        renderer:      Source of button images.
        store:         Store holding the ``instance`` configuration (v1 pull).
        invalidations: Channel announcing ``(page, bank)`` image changes.
    """

    def __init__(
        self,
        registry: SurfaceRegistry,
        renderer: Renderer,
        store: MappingStore,
        invalidations: BankInvalidations | None = None,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        enabled: bool = True,
    ) -> None:
        self.registry = registry
        self.renderer = renderer
        self.store = store
        self.host = host
        self.port = port
        self.enabled = enabled

        # Only the most recent V2 session receives pushes.
        self.current_client: SurfaceSession | None = None

        self._sessions: dict[int, SurfaceSession] = {}
        self._device_owners: dict[str, SurfaceSession] = {}
        self._startup_listeners: list[StartupListener] = []
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None

        if invalidations is not None:
            invalidations.subscribe(self.handle_bank_changed)

        self.app = create_app(self)

    def on_device_startup(self, listener: StartupListener) -> None:
        """Call *listener(device_id, session)* whenever a device registers."""
        self._startup_listeners.append(listener)

    def sessions(self) -> list[SurfaceSession]:
        return list(self._sessions.values())

    def session_for(self, websocket: WebSocket) -> SurfaceSession | None:
        return self._sessions.get(id(websocket))

    # ── Connection handling ────────────────────────────────────────

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Serve one plugin connection until it closes."""
        await websocket.accept()
        remote = websocket.client.host if websocket.client else "unknown"
        session = SurfaceSession(websocket, remote)
        self._sessions[id(websocket)] = session
        logger.debug("New connection from %s", remote)

        try:
            while session.state is not SessionState.CLOSED:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                text = message.get("text")
                if text is None:
                    logger.debug("Ignoring binary frame from %s", remote)
                    continue

                frame = parse_frame(text)
                if frame is None:
                    logger.warning("Discarding malformed frame from %s", remote)
                    continue

                await self.dispatch(session, frame)

        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Error in plugin connection from %s", remote)
        finally:
            self._close_session(session)
            self._sessions.pop(id(websocket), None)
            logger.debug("Connection from %s disconnected", remote)

    async def dispatch(self, session: SurfaceSession, frame: Frame) -> None:
        name = frame.command
        state = session.state

        if state is SessionState.CONNECTED:
            if name == "version":
                await self._handle_version(session, frame.arguments)
            else:
                logger.debug("Ignoring %s from %s before version", name, session.remote_address)
            return

        if name == "new_device":
            if state in (SessionState.V1_ACTIVE, SessionState.V2_AWAITING_DEVICE) and session.device_id is None:
                await self._handle_new_device(session, frame.arguments)
            else:
                logger.debug("Ignoring repeated new_device from %s", session.remote_address)
        elif name == "get_instances" and state is SessionState.V1_ACTIVE and session.device_id:
            await session.reply("get_instances", {"instances": self.store.get_key("instance", {})})
        elif name == "request_button" and state is SessionState.V2_SUBSCRIBED:
            await self._handle_request_button(session, frame.arguments)
        elif name == "unrequest_button" and state is SessionState.V2_SUBSCRIBED:
            await self._handle_unrequest_button(session, frame.arguments)
        elif not await session.emit(name, frame.arguments):
            logger.debug("Unhandled command %s from %s (%s)", name, session.remote_address, state.value)

    async def _handle_version(self, session: SurfaceSession, arguments: Any) -> None:
        version = _numeric_version(requested_version(arguments))

        if isinstance(version, (int, float)) and not isinstance(version, bool) and version > MAX_PROTOCOL_VERSION:
            # Newer than this server speaks
            await session.reply("version", {"version": MAX_PROTOCOL_VERSION, "error": "cannot continue"})
            logger.warning(
                "Client %s requested protocol %s, closing", session.remote_address, version
            )
            session.state = SessionState.CLOSED
            await session.websocket.close()
        elif version == 1 and not isinstance(version, bool):
            await session.reply("version", {"version": 1})
            session.version = 1
            session.state = SessionState.V1_ACTIVE
            logger.debug("init api v1 for %s", session.remote_address)
        else:
            await session.reply("version", {"version": 2})
            session.version = 2
            session.state = SessionState.V2_AWAITING_DEVICE
            logger.debug("init api v2 for %s", session.remote_address)

    async def _handle_new_device(self, session: SurfaceSession, arguments: Any) -> None:
        logger.debug("add device: %s %s", session.remote_address, device_id_argument(arguments))

        # The plugin's own id changes on every boot; the address keeps settings stable.
        device_id = DEVICE_ID_PREFIX + session.remote_address
        session.device_id = device_id

        self.registry.add_device({"path": device_id}, PLUGIN_KIND)
        self._device_owners[device_id] = session

        for listener in list(self._startup_listeners):
            result = listener(device_id, session)
            if inspect.isawaitable(result):
                await result

        await session.reply("new_device", {"result": True})

        if session.state is SessionState.V2_AWAITING_DEVICE:
            session.subscriptions = Subscriptions()
            session.state = SessionState.V2_SUBSCRIBED
            if self.current_client is not None and self.current_client is not session:
                logger.info(
                    "V2 client %s replaces %s as push target",
                    session.remote_address, self.current_client.remote_address,
                )
            self.current_client = session

        logger.info("Plugin surface registered: %s (protocol v%d)", device_id, session.version)

    async def _handle_request_button(self, session: SurfaceSession, arguments: Any) -> None:
        args = parse_args(ButtonArgs, arguments)
        if args is None:
            logger.warning("Malformed request_button from %s: %r", session.remote_address, arguments)
            return
        logger.debug("request_button: %s", args)

        session.subscriptions.add(args.page, args.bank)
        await session.reply("request_button", {"result": "ok"})
        await self._push_button(session, args.page, args.bank)

    async def _handle_unrequest_button(self, session: SurfaceSession, arguments: Any) -> None:
        args = parse_args(ButtonArgs, arguments)
        if args is None:
            logger.warning("Malformed unrequest_button from %s: %r", session.remote_address, arguments)
            return
        logger.debug("unrequest_button: %s", args)

        session.subscriptions.remove(args.page, args.bank)
        await session.reply("request_button", {"result": "ok"})

    def _close_session(self, session: SurfaceSession) -> None:
        session.state = SessionState.CLOSED
        if session.subscriptions is not None:
            session.subscriptions.clear()
            session.subscriptions = None
        device_id = session.device_id
        if device_id is not None:
            # Only the session that registered the id may remove its surface
            if self._device_owners.get(device_id) is session:
                del self._device_owners[device_id]
                self.registry.remove_device(device_id)
            else:
                logger.debug("Keeping %s, owned by a newer session", device_id)
        session.remove_listeners("keydown", "keyup")
        if self.current_client is session:
            self.current_client = None

    # ── Image pushes ───────────────────────────────────────────────

    async def handle_bank_changed(self, page: int, bank: int) -> None:
        """Push a changed button to the current V2 client if it subscribed.

        *bank* is 1-based, as announced by the invalidation channel.
        """
        client = self.current_client
        if client is None or client.subscriptions is None:
            return
        page = int(page)
        key = bank_to_key(int(bank))
        if client.subscriptions.contains(page, key):
            await self._push_button(client, page, key)

    async def _push_button(self, session: SurfaceSession, page: int, key: int) -> bool:
        image = self.renderer.get_image(page, key_to_bank(key))
        return await session.send_command(
            "fillImage",
            {"page": page, "bank": key, "keyIndex": key, "data": encode_buffer(image.buffer)},
        )

    # ── Listening ──────────────────────────────────────────────────

    async def serve(self) -> None:
        """Listen until stopped.  Bind failures are logged, not raised."""
        if not self.enabled:
            logger.info("Plugin service disabled")
            return

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning")
        self._server = uvicorn.Server(config)
        logger.info("Listening on port %d", self.port)
        try:
            await self._server.serve()
        except (OSError, SystemExit) as e:
            logger.error("Could not launch on %s:%d: %s", self.host, self.port, e)
        finally:
            self._server = None

    async def start(self) -> None:
        """Start :meth:`serve` in the background."""
        if self._serve_task is None or self._serve_task.done():
            self._serve_task = asyncio.create_task(self.serve())

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
            self._serve_task = None


def create_app(service: PluginService) -> FastAPI:
    """FastAPI app for *service*: the websocket at ``/``, 404 for plain HTTP."""
    app = FastAPI(title="SurfaceLink", version=__version__)

    async def plugin_socket(websocket: WebSocket) -> None:
        await service.handle_websocket(websocket)

    app.add_api_websocket_route("/", plugin_socket)
    return app
