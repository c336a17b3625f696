"""Surface registry and the driver for plugin-attached surfaces.

The protocol service registers each remote endpoint here.  Once the
connection is ready the registry binds the matching :class:`PluginSurface` to
the session, which then turns key presses from the client into logical
presses and draws logical keys onto the client's own key layout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from surfacelink.graphics import ButtonImage, Renderer, changed_images
from surfacelink.grid import DeviceLayout, bank_to_key, to_device_key, to_global_key
from surfacelink.protocol import KeyArgs, encode_buffer, parse_args

if TYPE_CHECKING:
    from surfacelink.websocket import SurfaceSession

logger = logging.getLogger(__name__)

PLUGIN_KIND = "streamdeck_plugin"
PLUGIN_LAYOUT = DeviceLayout(15, 5)


@dataclass(frozen=True)
class SurfacePress:
    """A key going down or up on a surface.

    ``page`` is None when the surface addressed the key by its own index
    (``key`` is then the translated logical key on the surface's current page).
    """

    device_id: str
    key: int
    pressed: bool
    page: int | None = None


PressHandler = Callable[[SurfacePress], None]


class PluginSurface:
    """A Stream Deck plugin surface reached through a websocket session."""

    def __init__(
        self,
        device_id: str,
        layout: DeviceLayout = PLUGIN_LAYOUT,
        on_press: PressHandler | None = None,
    ) -> None:
        self.device_id = device_id
        self.layout = layout
        self.session: SurfaceSession | None = None
        self.page = 1
        self._on_press = on_press
        self._drawn_page: int | None = None
        self._drawn: dict[int, int] = {}

    def bind(self, session: SurfaceSession) -> None:
        self.session = session
        self._drawn_page = None
        self._drawn = {}
        session.on("keydown", self._on_keydown)
        session.on("keyup", self._on_keyup)
        logger.info("Surface %s bound to %s", self.device_id, session.remote_address)

    def quit(self) -> None:
        self.session = None
        self._drawn = {}

    @property
    def draws_by_key(self) -> bool:
        """V1 clients are drawn by key index; V2 clients subscribe per button."""
        return self.session is not None and self.session.version == 1

    # ── Input ──────────────────────────────────────────────────────

    async def _on_keydown(self, arguments: Any) -> None:
        self._press(arguments, True)

    async def _on_keyup(self, arguments: Any) -> None:
        self._press(arguments, False)

    def _press(self, arguments: Any, pressed: bool) -> None:
        args = parse_args(KeyArgs, arguments)
        if args is None:
            logger.warning("Malformed key event from %s: %r", self.device_id, arguments)
            return

        if args.keyIndex is not None:
            key = to_global_key(self.layout.keys_per_row, args.keyIndex)
            press = SurfacePress(self.device_id, key, pressed)
        elif args.page is not None and args.bank is not None:
            press = SurfacePress(self.device_id, args.bank, pressed, page=args.page)
        else:
            logger.warning("Key event from %s without keyIndex or page/bank", self.device_id)
            return

        logger.debug("%s %s key %d", self.device_id, "down" if pressed else "up", press.key)
        if self._on_press is not None:
            self._on_press(press)

    # ── Output ─────────────────────────────────────────────────────

    async def draw(self, key: int, image: ButtonImage) -> bool:
        """Send the image for logical *key*.  False if the key is not on this device."""
        if self.session is None:
            return False
        device_key = to_device_key(self.layout, key)
        if device_key < 0:
            return False
        return await self.session.send_command(
            "fillImage", {"keyIndex": device_key, "data": encode_buffer(image.buffer)}
        )

    async def draw_page(self, renderer: Renderer, page: int) -> int:
        """Draw every button of *page* that changed since it was last drawn."""
        if page != self._drawn_page:
            self._drawn_page = page
            self._drawn = {}

        sent = 0
        for bank, image in changed_images(renderer, page, self._drawn).items():
            if await self.draw(bank_to_key(bank), image):
                self._drawn[bank] = image.updated
                sent += 1
        return sent


class SurfaceRegistry:
    """Tracks attached surfaces by device id."""

    def __init__(
        self,
        renderer: Renderer | None = None,
        on_press: PressHandler | None = None,
    ) -> None:
        self._surfaces: dict[str, PluginSurface] = {}
        self._renderer = renderer
        self._on_press = on_press

    def add_device(self, descriptor: dict[str, Any], kind: str) -> PluginSurface:
        if kind != PLUGIN_KIND:
            raise ValueError(f"Unsupported surface kind: {kind}")

        device_id = descriptor["path"]
        existing = self._surfaces.pop(device_id, None)
        if existing is not None:
            logger.info("Replacing surface %s", device_id)
            existing.quit()

        surface = PluginSurface(device_id, on_press=self._on_press)
        self._surfaces[device_id] = surface
        logger.info("Surface added: %s (%s)", device_id, kind)
        return surface

    def remove_device(self, device_id: str) -> None:
        surface = self._surfaces.pop(device_id, None)
        if surface is None:
            return
        surface.quit()
        logger.info("Surface removed: %s", device_id)

    async def plugin_startup(self, device_id: str, session: SurfaceSession) -> None:
        """Bind the registered surface to its session and draw its page."""
        surface = self._surfaces.get(device_id)
        if surface is None:
            logger.warning("Startup for unknown surface %s", device_id)
            return
        surface.bind(session)
        if self._renderer is not None and surface.draws_by_key:
            await surface.draw_page(self._renderer, surface.page)

    async def handle_bank_changed(self, page: int, bank: int) -> None:
        """Redraw changed buttons on every key-drawn surface showing *page*."""
        if self._renderer is None:
            return
        for surface in list(self._surfaces.values()):
            if surface.draws_by_key and surface.page == page:
                await surface.draw_page(self._renderer, page)

    def get(self, device_id: str) -> PluginSurface | None:
        return self._surfaces.get(device_id)

    def devices(self) -> list[str]:
        return list(self._surfaces)
