"""Tests for the tts-proxy command line."""
from __future__ import annotations

import json

import pytest

from tts_proxy import cli
from tts_proxy.services.speech_service import SpeechService


@pytest.fixture
def fake_service(monkeypatch, backend):
    """Route CLI synthesis through the fake backend."""
    monkeypatch.setattr(
        cli,
        "SpeechService",
        lambda settings: SpeechService(settings, transport=backend.transport()),
    )
    return backend


def _payload(out: str) -> dict:
    """The JSON summary line; log records may share stdout."""
    summary = next(line for line in out.splitlines() if line.startswith('{"ok"'))
    return json.loads(summary)


def test_cli_dry_run(capsys):
    code = cli.main(["--text", "dry run test. Second sentence!", "--dry-run"])
    assert code == 0
    assert "DRY_RUN_OK" in capsys.readouterr().out


def test_cli_dry_run_json(capsys):
    code = cli.main(["Hello. World! 😀", "--dry-run", "--json", "--chunk-size", "7"])
    assert code == 0
    payload = _payload(capsys.readouterr().out)
    item = payload["items"][0]
    assert payload["dry_run"] is True
    assert item["clean_len"] == len("Hello. World!")
    assert item["unit_lengths"] == [6, 6]
    assert item["concurrency"] == 2


def test_cli_requires_text():
    with pytest.raises(SystemExit):
        cli.main(["--dry-run"])


def test_cli_file_and_text_conflict(tmp_path):
    path = tmp_path / "in.txt"
    path.write_text("a\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        cli.main(["--text", "x", "--file", str(path), "--dry-run"])


def test_cli_synth_writes_audio(tmp_path, capsys, fake_service):
    out_path = tmp_path / "hello.mp3"
    code = cli.main(["--text", "Hello. World!", "--voice", "nova", "--out", str(out_path)])

    assert code == 0
    assert out_path.read_bytes() == b"[Hello. World!]"
    assert "CLI_OK" in capsys.readouterr().out


def test_cli_stream_mode(tmp_path, fake_service):
    out_path = tmp_path / "stream.mp3"
    code = cli.main(["One. Two. Six.", "--stream", "--chunk-size", "5", "--out", str(out_path)])
    assert code == 0
    assert out_path.read_bytes() == b"[One.][Two.][Six.]"


def test_cli_batch_file(tmp_path, fake_service):
    inputs = tmp_path / "inputs.txt"
    inputs.write_text("First.\n\nSecond.\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    code = cli.main(["--file", str(inputs), "--out", str(out_dir), "--format", "opus"])

    assert code == 0
    assert (out_dir / "item_001.ogg").read_bytes() == b"[First.]"
    assert (out_dir / "item_002.ogg").read_bytes() == b"[Second.]"


def test_cli_backend_failure(tmp_path, capsys, fake_service):
    fake_service.synth_fail = {"Hello."}
    code = cli.main(["Hello.", "--json", "--out", str(tmp_path / "x.mp3")])
    assert code == 1
    payload = _payload(capsys.readouterr().out)
    assert payload["ok"] is False
    assert payload["error"]["code"] == "tts_generation_error"


def test_cli_uses_settings_defaults(capsys, monkeypatch, tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("chunking:\n  chunk_size: 4\n", encoding="utf-8")
    monkeypatch.setenv("TTS_PROXY_SETTINGS", str(path))

    code = cli.main(["Hi. Yo.", "--dry-run", "--json"])

    assert code == 0
    payload = _payload(capsys.readouterr().out)
    assert payload["items"][0]["units"] == 2
