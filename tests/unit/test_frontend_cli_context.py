"""Unit tests for build_context."""

from dataclasses import replace
from unittest.mock import patch

import pytest

from cyberguard.core.models import StorageMode
from cyberguard.frontend.cli.context import build_context
from cyberguard.security.keystore import KeyringKeyStore, LocalKeyStore


@pytest.mark.asyncio
async def test_build_context_connected(settings, fake_kubo):
    async with await build_context(settings, transport=fake_kubo.transport()) as ctx:
        assert ctx.mode is StorageMode.CONNECTED
        assert isinstance(ctx.encryption.key_store, LocalKeyStore)
        assert ctx.index.list() == []
        assert settings.db_path.exists()

        result = await ctx.storage.store({"a": 1}, {"type": "scan_result"})
        assert result.success


@pytest.mark.asyncio
async def test_build_context_unreachable_is_fallback(settings, fake_kubo):
    fake_kubo.unreachable = True
    ctx = await build_context(settings, transport=fake_kubo.transport())
    try:
        assert ctx.mode is StorageMode.FALLBACK
        assert ctx.client.connection_error
    finally:
        await ctx.aclose()


@pytest.mark.asyncio
async def test_build_context_offline(settings, fake_kubo):
    ctx = await build_context(replace(settings, offline=True), transport=fake_kubo.transport())
    await ctx.aclose()
    assert ctx.mode is StorageMode.FALLBACK
    assert fake_kubo.calls == []


@pytest.mark.asyncio
async def test_build_context_keyring_backend(settings):
    with patch("cyberguard.security.keystore.keyring"):
        ctx = await build_context(replace(settings, key_backend="keyring", offline=True))
        await ctx.aclose()
    assert isinstance(ctx.encryption.key_store, KeyringKeyStore)


@pytest.mark.asyncio
async def test_records_survive_restart(settings):
    offline = replace(settings, offline=True)

    async with await build_context(offline) as ctx:
        cid = (await ctx.storage.store({"secret": True}, {"type": "incident_report"})).data["content_id"]

    async with await build_context(offline) as ctx:
        result = await ctx.storage.retrieve(cid)
        assert result.success
        assert result.data["value"] == {"secret": True}
