import pytest

from rcv_node.config import (
    CONFIG_FILENAME,
    get_bind_host,
    get_bind_port,
    get_state_path,
    load_config,
)

ENV_VARS = (
    "RCV_ADMIN",
    "RCV_STRICT_RANKING",
    "RCV_REGISTRY_ADDRESS",
    "RCV_REGISTRY_URL",
    "RCV_REQUIRE_SIGNED_TX",
    "RCV_CHAIN_ID",
    "RCV_STATE_PATH",
    "RCV_LOG_LEVEL",
    "RCV_HOST",
    "RCV_PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path):
    cfg = load_config(str(tmp_path))
    assert cfg["ledger"]["strict_ranking"] is False
    assert cfg["security"]["require_signed_tx"] is True
    assert get_bind_host(cfg) == "127.0.0.1"
    assert get_bind_port(cfg) == 8000
    assert get_state_path(cfg) == "rcv_state.json"
    assert cfg["registry"]["endpoints"] == {}


def test_yaml_overlays_defaults(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(
        "ledger:\n"
        "  admin: '0xAdmin'\n"
        "  strict_ranking: true\n"
        "server:\n"
        "  port: 9100\n",
        encoding="utf-8",
    )
    cfg = load_config(str(tmp_path))
    assert cfg["ledger"]["admin"] == "0xAdmin"
    assert cfg["ledger"]["strict_ranking"] is True
    # untouched keys of a merged section keep their defaults
    assert cfg["ledger"]["registry_address"] == ""
    assert get_bind_port(cfg) == 9100
    assert get_bind_host(cfg) == "127.0.0.1"


def test_env_wins_over_yaml(tmp_path, monkeypatch):
    (tmp_path / CONFIG_FILENAME).write_text("server:\n  port: 9100\n", encoding="utf-8")
    monkeypatch.setenv("RCV_PORT", "9200")
    monkeypatch.setenv("RCV_STRICT_RANKING", "yes")
    monkeypatch.setenv("RCV_REQUIRE_SIGNED_TX", "0")
    monkeypatch.setenv("RCV_CHAIN_ID", "rcv-staging")

    cfg = load_config(str(tmp_path))
    assert get_bind_port(cfg) == 9200
    assert cfg["ledger"]["strict_ranking"] is True
    assert cfg["security"]["require_signed_tx"] is False
    assert cfg["security"]["chain_id"] == "rcv-staging"


def test_invalid_env_value_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("RCV_PORT", "not-a-port")
    assert get_bind_port(load_config(str(tmp_path))) == 8000


def test_non_mapping_yaml_is_an_error(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(tmp_path))


def test_registry_endpoints_from_yaml(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(
        "registry:\n"
        "  endpoints:\n"
        "    '0xreg2': http://reg2.local\n",
        encoding="utf-8",
    )
    cfg = load_config(str(tmp_path))
    assert cfg["registry"]["endpoints"] == {"0xreg2": "http://reg2.local"}
    assert cfg["registry"]["timeout_sec"] == 2.5
