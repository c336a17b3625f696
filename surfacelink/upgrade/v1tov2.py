"""Upgrade 1 -> 2: pages grow from 15 keys (3x5) to 32 keys (4x8)."""

from __future__ import annotations

from typing import Any

from surfacelink.grid import LEGACY_BUTTONS, legacy_fifteen_to_current

MAX_PAGES = 99

# Store keys holding ``page -> bank -> value`` maps.
STORE_KEYS = ("config", "bank_actions", "bank_release_actions", "feedbacks")
# Export keys holding the same shape (per page for a full export).
IMPORT_KEYS = ("config", "actions", "release_actions", "feedbacks")


def convert_page(old_page: dict[str, Any] | None) -> dict[str, Any]:
    """Re-address one page's ``bank -> value`` map onto the 32-key grid."""
    new_page: dict[str, Any] = {}
    if not old_page:
        return new_page
    for bank in range(1, LEGACY_BUTTONS + 1):
        value = old_page.get(str(bank))
        if value is not None:
            new_page[str(legacy_fifteen_to_current(bank))] = value
    return new_page


def _convert_pages(old: dict[str, Any] | None) -> dict[str, Any]:
    old = old or {}
    return {str(page): convert_page(old.get(str(page))) for page in range(1, MAX_PAGES + 1)}


def upgrade_startup(store) -> None:
    for key in STORE_KEYS:
        old = store.get_key(key)
        if old is None:
            continue
        store.set_key(key, _convert_pages(old))


def upgrade_import(obj: dict[str, Any]) -> dict[str, Any]:
    if obj.get("type") == "full":
        for key in IMPORT_KEYS:
            if key in obj:
                obj[key] = {page: convert_page(banks) for page, banks in obj[key].items()}
    else:
        for key in IMPORT_KEYS:
            if key in obj:
                obj[key] = convert_page(obj[key])
    return obj
