import pytest

from gossipchain.cli.node_cli import build_parser, config_from_args, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("BOOTSTRAP_PEERS", "DIFFICULTY_PREFIX", "LISTEN_PORT", "MINE_IN_BACKGROUND"):
        monkeypatch.delenv(f"GOSSIPCHAIN_{name}", raising=False)


def test_arguments_override_defaults():
    args = build_parser().parse_args([
        "--port", "4001",
        "--peer", "10.0.0.1:4000",
        "--peer", "10.0.0.2:4000",
        "--difficulty-prefix", "000",
        "--foreground-mining",
    ])
    config = config_from_args(args)
    assert config.listen_port == 4001
    assert config.bootstrap_peers == [("10.0.0.1", 4000), ("10.0.0.2", 4000)]
    assert config.difficulty_prefix == "000"
    assert config.mine_in_background is False
    assert config.halt_on_invalid_chains is False


def test_defaults_without_arguments():
    config = config_from_args(build_parser().parse_args([]))
    assert config.difficulty_prefix == "00"
    assert config.mine_in_background is True
    assert config.bootstrap_peers == []


def test_bad_peer_address_exits_with_usage_error():
    with pytest.raises(SystemExit) as exc_info:
        main(["--peer", "missing-port"])
    assert exc_info.value.code == 2
