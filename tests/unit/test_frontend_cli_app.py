"""Unit tests for the command-line front end."""

import json
from dataclasses import replace
from unittest.mock import patch

import pytest

from cyberguard.core.exceptions import OperationUnsupported
from cyberguard.frontend.cli.app import _load_payload, build_parser, main, run_command
from cyberguard.frontend.cli.context import build_context


@pytest.fixture
async def offline_ctx(settings):
    ctx = await build_context(replace(settings, offline=True))
    yield ctx
    await ctx.aclose()


@pytest.fixture
async def connected_ctx(settings, fake_kubo):
    ctx = await build_context(settings, transport=fake_kubo.transport())
    yield ctx
    await ctx.aclose()


def _run(ctx, *argv):
    return run_command(ctx, build_parser().parse_args(list(argv)))


def test_load_payload_json_text_and_file(tmp_path):
    assert _load_payload('{"a": 1}') == {"a": 1}
    assert _load_payload("just words") == "just words"

    path = tmp_path / "report.json"
    path.write_text('{"risk": 42}', encoding="utf-8")
    assert _load_payload(f"@{path}") == {"risk": 42}


@pytest.mark.asyncio
async def test_store_get_list_delete(offline_ctx, capsys):
    assert await _run(offline_ctx, "store", '{"url": "http://example.com"}', "--type", "scan_result", "--title", "t") == 0
    stored = json.loads(capsys.readouterr().out)
    cid = stored["content_id"]
    assert cid.startswith("local-")

    assert await _run(offline_ctx, "get", cid) == 0
    assert json.loads(capsys.readouterr().out)["value"] == {"url": "http://example.com"}

    assert await _run(offline_ctx, "list", "--type", "scan_result") == 0
    listed = json.loads(capsys.readouterr().out)
    assert [e["cid"] for e in listed] == [cid]

    assert await _run(offline_ctx, "delete", cid) == 0
    assert json.loads(capsys.readouterr().out)["removed"] is True


@pytest.mark.asyncio
async def test_get_unknown_reports_error(offline_ctx, capsys):
    assert await _run(offline_ctx, "get", "local-0000000000000000") == 1
    assert "NotFound" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_clear_requires_confirmation(offline_ctx, capsys):
    await _run(offline_ctx, "store", '"x"', "--no-encrypt")
    capsys.readouterr()

    assert await _run(offline_ctx, "clear") == 2
    assert len(offline_ctx.index) == 1

    assert await _run(offline_ctx, "clear", "--yes") == 0
    assert len(offline_ctx.index) == 0


@pytest.mark.asyncio
async def test_export_writes_file(offline_ctx, tmp_path, capsys):
    await _run(offline_ctx, "store", '{"risk": 42}', "--type", "scan_result")
    cid = json.loads(capsys.readouterr().out)["content_id"]

    out = tmp_path / "out.json"
    assert await _run(offline_ctx, "export", cid, "-o", str(out)) == 0
    assert json.loads(out.read_text(encoding="utf-8")) == {"risk": 42}


@pytest.mark.asyncio
async def test_status_and_stats(connected_ctx, capsys):
    assert await _run(connected_ctx, "status") == 0
    status = json.loads(capsys.readouterr().out)
    assert status["mode"] == "connected"
    assert status["node"]["peer_id"] == "12D3KooWFakeNode"

    assert await _run(connected_ctx, "stats") == 0
    assert json.loads(capsys.readouterr().out)["total_items"] == 0


@pytest.mark.asyncio
async def test_peers(connected_ctx, capsys):
    assert await _run(connected_ctx, "peers") == 0
    peers = json.loads(capsys.readouterr().out)
    assert peers[0]["addr"] == "/ip4/10.0.0.2/tcp/4001"


@pytest.mark.asyncio
async def test_peers_offline_raises(offline_ctx):
    with pytest.raises(OperationUnsupported):
        await _run(offline_ctx, "peers")


def test_main_offline_store(tmp_path, capsys):
    db = tmp_path / "cli.db"
    with patch.dict("os.environ", {}, clear=True):
        code = main(["--db", str(db), "--offline", "store", '{"a": 1}', "--no-encrypt"])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["content_id"].startswith("local-")


def test_main_peers_offline_exits_1(tmp_path, capsys):
    with patch.dict("os.environ", {}, clear=True):
        code = main(["--db", str(tmp_path / "cli.db"), "--offline", "peers"])
    assert code == 1
    assert "OperationUnsupported" in capsys.readouterr().err


def test_main_bad_config(tmp_path, capsys):
    with patch.dict("os.environ", {"CYBERGUARD_KEY_BACKEND": "vault"}, clear=True):
        code = main(["--db", str(tmp_path / "cli.db"), "stats"])
    assert code == 2
    assert "Invalid configuration" in capsys.readouterr().err


def test_type_is_limited_to_record_types(capsys):
    parser = build_parser()
    assert parser.parse_args(["store", "{}"]).type == "other"
    assert parser.parse_args(["list", "--type", "incident_report"]).type == "incident_report"

    with pytest.raises(SystemExit):
        parser.parse_args(["store", "{}", "--type", "malware_sample"])
    assert "invalid choice" in capsys.readouterr().err
