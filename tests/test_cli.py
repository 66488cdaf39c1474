from __future__ import annotations

import json

import pytest

from app import cli
from tests.conftest import FakeRunner


def test_check_passes_with_toolchain(monkeypatch):
    monkeypatch.setattr(cli, "LocalSubprocessRunner", FakeRunner)
    cli.main(["--check"])


def test_check_fails_without_ffprobe(monkeypatch):
    monkeypatch.setattr(cli, "LocalSubprocessRunner", lambda: FakeRunner(missing=["ffprobe"]))
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--check"])
    assert excinfo.value.code == 1


def test_probe_prints_orientation_and_sample_key(monkeypatch, tmp_path, capsys):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"movie")
    monkeypatch.setattr(cli, "LocalSubprocessRunner", lambda: FakeRunner(width=720, height=1280))
    cli.main(["probe", "--file", str(media)])

    stdout = capsys.readouterr().out
    # Structured log lines share stdout; the report is the indented JSON block.
    output = json.loads(stdout[stdout.index("{\n") :])
    assert output["orientation"] == "portrait"
    assert output["sample_key"].startswith("portrait/")
    assert output["sample_key"].endswith(".mp4")


def test_remux_moves_output(monkeypatch, tmp_path):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"movie")
    destination = tmp_path / "out.mp4"
    monkeypatch.setattr(cli, "LocalSubprocessRunner", FakeRunner)
    cli.main(["remux", "--file", str(media), "--output", str(destination)])
    assert destination.read_bytes() == b"movie"


def test_missing_file_exits(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["probe", "--file", str(tmp_path / "missing.mp4")])
    assert excinfo.value.code == 2


def test_no_command_prints_help():
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 1
