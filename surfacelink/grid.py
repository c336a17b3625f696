"""Key addressing for the logical button grid.

Every page is a fixed grid of ``ROWS x COLS`` slots, numbered row-major from
0.  Physical and virtual surfaces come in other shapes, so presses and draws
are translated between the logical grid and the device's own numbering here.

The legacy 15-key layout (3 rows of 5) is also handled so stored pages from
before the 32-key grid can be re-addressed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ROWS = 4
COLS = 8
MAX_BUTTONS = ROWS * COLS

LEGACY_BUTTONS = 15
LEGACY_COLS = 5


@dataclass(frozen=True)
class DeviceLayout:
    """Shape of a surface: total key count and keys per row."""

    keys_total: int
    keys_per_row: int

    def __post_init__(self) -> None:
        if self.keys_per_row <= 0 or self.keys_per_row > COLS:
            raise ValueError(
                f"keys_per_row must be between 1 and {COLS}, got {self.keys_per_row}"
            )
        if self.keys_total < 0 or self.keys_total % self.keys_per_row:
            raise ValueError(
                f"keys_total {self.keys_total} is not a multiple of {self.keys_per_row}"
            )

    @property
    def rows(self) -> int:
        return self.keys_total // self.keys_per_row

    @property
    def is_identity(self) -> bool:
        return self == IDENTITY_LAYOUT


IDENTITY_LAYOUT = DeviceLayout(MAX_BUTTONS, COLS)


def to_device_key(layout: DeviceLayout, key: int) -> int:
    """Translate a logical key (0-31) to the device's key index.

    Columns beyond the device width are cropped, not wrapped: those keys
    return ``-1``.  Keys below the device's last row also return ``-1``.
    """
    if layout.is_identity:
        return key

    if key % COLS > layout.keys_per_row:
        return -1

    row = key // COLS
    col = key % COLS

    if row >= layout.keys_total / layout.keys_per_row or col >= layout.keys_per_row:
        return -1

    return row * layout.keys_per_row + col


def to_global_key(keys_per_row: int, device_key: int) -> int:
    """Translate a device key index back to the logical grid."""
    row, col = divmod(device_key, keys_per_row)
    return row * COLS + col


def legacy_fifteen_to_current(old_key: int) -> int:
    """Map a bank of the old 15-key grid onto the 32-key grid.

    Each old row of 5 becomes the start of a row of 8, shifted one column
    right, so the result is directly usable as a 1-based bank number on the
    new grid (``1 -> 1``, ``6 -> 9``, ``15 -> 21``).
    """
    k = old_key - 1
    row = k // LEGACY_COLS
    col = k % LEGACY_COLS + 1
    result = row * COLS + col

    if result >= MAX_BUTTONS:
        logger.warning(
            "Legacy key %d maps past the grid (%d); old config had bigger pages than expected",
            old_key, result,
        )
        return MAX_BUTTONS - 1
    return result


def bank_to_key(bank: int) -> int:
    """1-based bank number to 0-based key index."""
    return bank - 1


def key_to_bank(key: int) -> int:
    """0-based key index to 1-based bank number."""
    return key + 1
