"""Tests for settings parsing."""

from pathlib import Path

from vidforge.config import Settings


def test_default_platforms_parsed(monkeypatch):
    monkeypatch.setenv("SCHEDULER_DEFAULT_PLATFORMS", " YouTube, tiktok ,,")
    assert Settings().default_platforms == ["youtube", "tiktok"]


def test_scratch_dir_defaults_under_data_dir(tmp_path):
    settings = Settings(vidforge_data_dir=str(tmp_path), vidforge_scratch_dir=None)
    assert settings.scratch_dir == tmp_path.resolve() / "scratch"
    assert settings.storage_dir == tmp_path.resolve() / "storage"


def test_explicit_scratch_dir(tmp_path):
    settings = Settings(vidforge_scratch_dir=str(tmp_path / "x"))
    assert settings.scratch_dir == Path(tmp_path / "x").resolve()
