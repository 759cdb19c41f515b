from pathlib import Path

import pytest
from pydantic import ValidationError

from flashsync.application.config import AppConfig, resolve_config
from flashsync.application.factory import build_runtime, get_remote_store
from flashsync.infrastructure.remote.http_store import HttpRemoteStore
from flashsync.infrastructure.remote.memory_store import InMemoryRemoteStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, mock_home):
    for key in ("FLASHSYNC_REMOTE_URL", "FLASHSYNC_SYNC_INTERVAL_SECONDS", "FLASHSYNC_DB_PATH"):
        monkeypatch.delenv(key, raising=False)


def test_defaults(mock_home):
    config = resolve_config()
    assert config.remote_backend == "http"
    assert config.sync_interval_seconds == 60
    assert config.dead_letter_after == 3
    assert config.new_card_limit == 5
    assert config.db_path == mock_home / ".local/share/flashsync/flashsync.db"


def test_env_overrides_defaults(monkeypatch):
    monkeypatch.setenv("FLASHSYNC_REMOTE_URL", "https://example.supabase.co/")
    monkeypatch.setenv("FLASHSYNC_SYNC_INTERVAL_SECONDS", "15")

    config = resolve_config()

    assert config.remote_url == "https://example.supabase.co"
    assert config.sync_interval_seconds == 15


def test_toml_file_is_read(mock_home):
    config_dir = mock_home / ".config" / "flashsync"
    config_dir.mkdir(parents=True)
    (config_dir / "config.toml").write_text(
        'remote_backend = "memory"\ndead_letter_after = 5\nnew_card_limit = 10\n'
    )

    config = resolve_config()

    assert config.remote_backend == "memory"
    assert config.dead_letter_after == 5
    assert config.new_card_limit == 10


def test_env_beats_file_and_cli_beats_env(mock_home, monkeypatch):
    (mock_home / ".flashsync.toml").write_text('remote_url = "http://from-file"\n')
    monkeypatch.setenv("FLASHSYNC_REMOTE_URL", "http://from-env")

    assert resolve_config().remote_url == "http://from-env"
    assert resolve_config({"remote_url": "http://from-cli"}).remote_url == "http://from-cli"


def test_none_overrides_are_ignored():
    config = resolve_config({"remote_url": None, "remote_backend": "memory"})
    assert config.remote_url == "http://localhost:54321"
    assert config.remote_backend == "memory"


def test_db_path_is_expanded(mock_home):
    assert resolve_config({"db_path": "~/cards.db"}).db_path == (mock_home / "cards.db").resolve()
    assert resolve_config({"db_path": ":memory:"}).db_path == Path(":memory:")


@pytest.mark.parametrize(
    "overrides",
    [
        {"sync_interval_seconds": 0},
        {"dead_letter_after": 0},
        {"remote_backend": "ftp"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        AppConfig(**overrides)


def test_remote_store_selection():
    assert isinstance(get_remote_store(AppConfig(remote_backend="memory")), InMemoryRemoteStore)
    store = get_remote_store(AppConfig(remote_url="https://x.test", remote_api_key="k"))
    assert isinstance(store, HttpRemoteStore)
    assert store.url == "https://x.test"
    assert store.api_key == "k"


@pytest.mark.asyncio
async def test_runtime_wires_shared_database(tmp_path, timer_factory):
    config = AppConfig(db_path=tmp_path / "rt.db", remote_backend="memory", sync_interval_seconds=5)
    runtime = build_runtime(config, timer_factory=timer_factory)
    try:
        assert runtime.database.is_open
        assert runtime.coordinator.interval == 5
        runtime.coordinator.start()
        assert timer_factory.timers[0].interval == 5
    finally:
        await runtime.close()

    assert not runtime.database.is_open
    assert timer_factory.timers[0].cancelled
