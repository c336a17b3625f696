"""Upgrade 2 -> 3: press and release actions merge into action sets.

Each bank's ``actions`` become the ``down`` set and its ``release_actions``
the ``up`` set of ``bank_action_sets[page][bank]``.
"""

from __future__ import annotations

from typing import Any


def combine_page(actions: dict[str, Any] | None, release_actions: dict[str, Any] | None) -> dict[str, Any]:
    actions = actions or {}
    release_actions = release_actions or {}
    sets: dict[str, Any] = {}
    for bank in sorted(set(actions) | set(release_actions), key=_numeric_order):
        sets[bank] = {
            "down": list(actions.get(bank) or []),
            "up": list(release_actions.get(bank) or []),
        }
    return sets


def _numeric_order(key: str) -> tuple[int, str]:
    return (int(key), key) if key.isdigit() else (0, key)


def upgrade_startup(store) -> None:
    actions = store.get_key("bank_actions", {}) or {}
    release_actions = store.get_key("bank_release_actions", {}) or {}

    action_sets: dict[str, Any] = {}
    for page in sorted(set(actions) | set(release_actions), key=_numeric_order):
        action_sets[page] = combine_page(actions.get(page), release_actions.get(page))

    store.set_key("bank_action_sets", action_sets)
    store.delete_key("bank_actions")
    store.delete_key("bank_release_actions")


def upgrade_import(obj: dict[str, Any]) -> dict[str, Any]:
    actions = obj.pop("actions", None)
    release_actions = obj.pop("release_actions", None)
    if actions is None and release_actions is None:
        return obj

    if obj.get("type") == "full":
        actions = actions or {}
        release_actions = release_actions or {}
        obj["action_sets"] = {
            page: combine_page(actions.get(page), release_actions.get(page))
            for page in sorted(set(actions) | set(release_actions), key=_numeric_order)
        }
    else:
        obj["action_sets"] = combine_page(actions, release_actions)
    return obj
