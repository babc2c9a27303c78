"""Tests for configuration loading and validation."""

import pytest

from cstat.config import (
    Config,
    ConfigurationError,
    MIN_INTERVAL,
    build_cli_parser,
    load_config,
    load_yaml_config,
    validate,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("CSTAT_NODETOOL", raising=False)
    monkeypatch.delenv("CSTAT_LOG_LEVEL", raising=False)


class TestDefaults:
    def test_defaults(self):
        cfg = Config()
        assert cfg.interval == 5
        assert cfg.count is None
        assert cfg.disk == "sda"
        assert cfg.iface == "eth0"
        assert cfg.nodetool == "nodetool"
        assert not cfg.percentiles

    def test_minimal_cli(self):
        cfg = load_config(["-k", "ks"])
        assert cfg.keyspace == "ks"
        assert cfg.table is None
        assert cfg.interval == 5

    def test_frozen(self):
        cfg = Config(keyspace="ks")
        with pytest.raises(AttributeError):
            cfg.interval = 10


class TestCli:
    def test_all_flags(self):
        cfg = load_config([
            "-k", "ks", "-t", "users", "-i", "3", "-n", "10",
            "--disk", "nvme0n1", "--iface", "bond0",
            "--log-file", "/var/log/cassandra/system.log",
            "--event-output", "/tmp/events.log",
            "--timestamp", "--epoch", "--no-header", "--read-repair",
            "--compaction", "--percentiles", "--cache",
            "--host", "db1", "--port", "7199",
        ])
        assert cfg.table == "users"
        assert cfg.interval == 3
        assert cfg.count == 10
        assert cfg.disk == "nvme0n1"
        assert cfg.iface == "bond0"
        assert cfg.log_file == "/var/log/cassandra/system.log"
        assert cfg.event_output == "/tmp/events.log"
        assert cfg.timestamp and cfg.epoch and cfg.no_header
        assert cfg.read_repair and cfg.compaction and cfg.percentiles and cfg.cache
        assert cfg.host == "db1"
        assert cfg.port == 7199

    def test_unset_flags_stay_none(self):
        args = build_cli_parser().parse_args(["-k", "ks"])
        assert args.timestamp is None
        assert args.interval is None


class TestYaml:
    def test_load(self, tmp_path):
        path = tmp_path / "cstat.yaml"
        path.write_text("keyspace: ks\ninterval: 10\nlog-file: /var/log/system.log\ncache: true\n")
        assert load_yaml_config(str(path)) == {
            "keyspace": "ks",
            "interval": 10,
            "log_file": "/var/log/system.log",
            "cache": True,
        }

    def test_no_path(self):
        assert load_yaml_config(None) == {}

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_yaml_config(str(tmp_path / "nope.yaml")) == {}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_config(str(path)) == {}

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("keyspace: ks\nintervall: 3\n")
        with pytest.raises(ConfigurationError, match="intervall"):
            load_yaml_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("keyspace: [ks\n")
        with pytest.raises(ConfigurationError):
            load_yaml_config(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- ks\n- users\n")
        with pytest.raises(ConfigurationError):
            load_yaml_config(str(path))

    def test_quoted_numbers_are_converted(self, tmp_path):
        path = tmp_path / "cstat.yaml"
        path.write_text('keyspace: ks\ninterval: "5"\ncount: "3"\nport: "7199"\ntable: 2024\n')
        cfg = load_config(["--config", str(path)])
        assert cfg.interval == 5
        assert cfg.count == 3
        assert cfg.port == 7199
        assert cfg.table == "2024"

    @pytest.mark.parametrize("line", [
        'interval: "five"',
        "interval: 2.5",
        "count: true",
        "port: [7199]",
        'cache: "yes please"',
        "keyspace: {name: ks}",
    ])
    def test_wrong_value_type(self, tmp_path, line):
        path = tmp_path / "bad.yaml"
        path.write_text(line + "\n")
        with pytest.raises(ConfigurationError):
            load_yaml_config(str(path))

    def test_cli_overrides_yaml(self, tmp_path):
        path = tmp_path / "cstat.yaml"
        path.write_text("keyspace: ks\ninterval: 10\ntable: users\n")
        cfg = load_config(["--config", str(path), "-i", "3"])
        assert cfg.keyspace == "ks"
        assert cfg.table == "users"
        assert cfg.interval == 3


class TestEnv:
    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "cstat.yaml"
        path.write_text("keyspace: ks\nnodetool: /usr/bin/nodetool\n")
        monkeypatch.setenv("CSTAT_NODETOOL", "/opt/cassandra/bin/nodetool")
        cfg = load_config(["--config", str(path)])
        assert cfg.nodetool == "/opt/cassandra/bin/nodetool"

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("CSTAT_LOG_LEVEL", "DEBUG")
        assert load_config(["-k", "ks"]).log_level == "DEBUG"
        assert load_config(["-k", "ks", "--log-level", "WARNING"]).log_level == "WARNING"


class TestValidation:
    def test_keyspace_required(self):
        with pytest.raises(ConfigurationError, match="keyspace"):
            load_config([])

    def test_percentiles_need_table(self):
        with pytest.raises(ConfigurationError, match="table"):
            load_config(["-k", "ks", "--percentiles"])

    def test_percentiles_with_table(self):
        assert load_config(["-k", "ks", "-t", "users", "--percentiles"]).percentiles

    def test_interval_too_short(self):
        with pytest.raises(ConfigurationError, match="interval"):
            load_config(["-k", "ks", "-i", "1"])

    def test_minimum_interval_accepted(self):
        validate(Config(keyspace="ks", interval=MIN_INTERVAL))

    @pytest.mark.parametrize("count", [0, -3])
    def test_count_must_be_positive(self, count):
        with pytest.raises(ConfigurationError, match="count"):
            validate(Config(keyspace="ks", count=count))

    def test_unknown_log_level(self):
        with pytest.raises(ConfigurationError, match="log level"):
            validate(Config(keyspace="ks", log_level="CHATTY"))

    def test_is_a_value_error(self):
        assert issubclass(ConfigurationError, ValueError)
