"""Tests for service wiring and the entry point."""

from __future__ import annotations

import asyncio
import json
import sys

import pytest

from conftest import FakeWebSocket, settle
from surfacelink.__main__ import main
from surfacelink.config import SurfaceLinkConfig
from surfacelink.server import build_service, open_store
from surfacelink.upgrade import TARGET_VERSION, VERSION_KEY, StoreTooNewError


@pytest.fixture()
def config(tmp_path):
    return SurfaceLinkConfig(data_dir=str(tmp_path / "data"), port=0)


def _write_store(config: SurfaceLinkConfig, data: dict) -> None:
    config.store_path.parent.mkdir(parents=True, exist_ok=True)
    config.store_path.write_text(json.dumps(data))


class TestOpenStore:
    def test_upgrades_legacy_store(self, config):
        _write_store(config, {"config": {"1": {"6": {"text": "six"}}}})
        store = open_store(config)
        assert store.get_key(VERSION_KEY) == TARGET_VERSION
        assert store.get_key("config")["1"] == {"9": {"text": "six"}}
        assert (config.store_path.parent / "db.v1").exists()

    def test_new_store_is_stamped(self, config):
        store = open_store(config)
        assert store.get_key(VERSION_KEY) == TARGET_VERSION
        assert config.store_path.exists()

    def test_too_new_store_raises(self, config):
        _write_store(config, {VERSION_KEY: TARGET_VERSION + 5})
        with pytest.raises(StoreTooNewError):
            open_store(config)


class TestBuildService:
    @pytest.mark.asyncio
    async def test_v1_surface_is_drawn_by_key(self, config):
        service = build_service(config, open_store(config))
        ws = FakeWebSocket()
        task = asyncio.create_task(service.handle_websocket(ws))
        await settle()

        ws.push("version", {"version": 1})
        ws.push("new_device", {"id": "x"})
        await settle()
        assert len(ws.commands("fillImage")) == 15

        ws.sent.clear()
        await service.renderer.set_image(1, 11, b"z")
        assert ws.commands("fillImage") == [
            {"command": "fillImage", "arguments": {"keyIndex": 7, "data": {"type": "Buffer", "data": [122]}}},
        ]

        ws.disconnect()
        await asyncio.wait_for(task, timeout=1)
        assert service.registry.devices() == []

    @pytest.mark.asyncio
    async def test_v2_surface_gets_subscription_pushes_only(self, config):
        service = build_service(config, open_store(config))
        ws = FakeWebSocket()
        task = asyncio.create_task(service.handle_websocket(ws))
        await settle()

        ws.push("version", {"version": 2})
        ws.push("new_device", {"id": "x"})
        ws.push("request_button", {"page": 1, "bank": 10})
        await settle()
        ws.sent.clear()

        await service.renderer.set_image(1, 11, b"z")
        assert ws.sent == [{
            "command": "fillImage",
            "arguments": {"page": 1, "bank": 10, "keyIndex": 10, "data": {"type": "Buffer", "data": [122]}},
        }]

        ws.disconnect()
        await asyncio.wait_for(task, timeout=1)

    def test_service_settings_from_config(self, config):
        config.host = "127.0.0.1"
        config.enabled = False
        service = build_service(config, open_store(config))
        assert service.host == "127.0.0.1"
        assert service.port == 0
        assert service.enabled is False


class TestMain:
    def test_too_new_store_exits(self, config, monkeypatch):
        _write_store(config, {VERSION_KEY: TARGET_VERSION + 1})
        monkeypatch.setenv("SURFACELINK_DATA_DIR", config.data_dir)
        monkeypatch.setattr(sys, "argv", ["surfacelink"])

        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1

    def test_disabled_service_returns(self, config, monkeypatch):
        monkeypatch.setenv("SURFACELINK_DATA_DIR", config.data_dir)
        monkeypatch.setenv("SURFACELINK_ENABLED", "0")
        monkeypatch.setattr(sys, "argv", ["surfacelink", "--debug"])

        main()
        assert config.store_path.exists()
