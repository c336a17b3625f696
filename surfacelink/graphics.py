"""Button images and the bank-invalidation channel.

Rendering itself lives elsewhere; this module only defines what the protocol
service needs from a renderer, a simple in-memory renderer, and the channel
that tells listeners a button's image has changed.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from surfacelink.grid import MAX_BUTTONS

logger = logging.getLogger(__name__)

BankListener = Callable[[int, int], Awaitable[None]]


@dataclass(frozen=True)
class ButtonImage:
    """A rendered button.  Equal ``updated`` values mean the image is unchanged."""

    buffer: bytes
    updated: int = 0


class Renderer(Protocol):
    def get_image(self, page: int, bank: int) -> ButtonImage: ...


class BankInvalidations:
    """Delivers ``(page, bank)`` change notifications to async listeners.

    Listeners run in subscription order.  One failing listener is logged and
    does not keep the notification from the rest.
    """

    def __init__(self) -> None:
        self._listeners: list[BankListener] = []

    def subscribe(self, listener: BankListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: BankListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def invalidate(self, page: int, bank: int) -> None:
        for listener in list(self._listeners):
            try:
                await listener(page, bank)
            except Exception:
                logger.exception("Bank listener failed for page %s bank %s", page, bank)


class ImageCache:
    """In-memory renderer holding the last image set for each button."""

    def __init__(self, invalidations: BankInvalidations | None = None) -> None:
        self._images: dict[tuple[int, int], ButtonImage] = {}
        self._counter = itertools.count(1)
        self._invalidations = invalidations

    def get_image(self, page: int, bank: int) -> ButtonImage:
        return self._images.get((page, bank), ButtonImage(b""))

    async def set_image(self, page: int, bank: int, buffer: bytes) -> ButtonImage:
        image = ButtonImage(bytes(buffer), next(self._counter))
        self._images[(page, bank)] = image
        if self._invalidations is not None:
            await self._invalidations.invalidate(page, bank)
        return image


def changed_images(
    renderer: Renderer, page: int, cache: dict[int, int] | None = None
) -> dict[int, ButtonImage]:
    """Return the banks of *page* whose image differs from the client's *cache*.

    *cache* maps bank number to the ``updated`` value the client last saw.
    With no cache every bank is returned.
    """
    result: dict[int, ButtonImage] = {}
    for bank in range(1, MAX_BUTTONS + 1):
        image = renderer.get_image(page, bank)
        if cache is None or cache.get(bank) != image.updated:
            result[bank] = image
    return result
