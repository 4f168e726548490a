import pytest

from embedded_redis.config import (
    ClusterSettings,
    ReplicationGroupSpec,
    SentinelMonitor,
    ServerConfig,
    ServerRole,
    Settings,
    TopologySpec,
    interpolate_env_vars,
)
from embedded_redis.exceptions import DuplicateGroupNameError
from tests.conftest import CONFIGS_DIR


@pytest.mark.unit
def test_server_config_is_immutable_and_normalized():
    config = ServerConfig(port=6379, settings=["appendonly yes"])
    assert config.settings == ("appendonly yes",)
    assert config.ports() == [6379]
    assert config.tls_ports() == []
    with pytest.raises(Exception):
        config.port = 1


@pytest.mark.unit
@pytest.mark.parametrize("kwargs", [
    {"port": 0},
    {"port": 0, "tls_port": 0},
    {"port": -1},
    {"role": ServerRole.REPLICA, "port": 6380},
    {"role": ServerRole.MASTER, "port": 6380, "master": ("127.0.0.1", 6379)},
    {"role": ServerRole.MASTER, "port": 6380, "monitors": [SentinelMonitor("m", "h", 1)]},
])
def test_server_config_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        ServerConfig(**kwargs)


@pytest.mark.unit
def test_tls_only_config_is_valid():
    config = ServerConfig(port=0, tls_port=6380)
    assert config.ports() == []
    assert config.tls_ports() == [6380]


@pytest.mark.unit
def test_topology_spec_validation():
    spec = TopologySpec(sentinel_count=2, quorum=2, groups=[
        ReplicationGroupSpec("a", 1),
        ReplicationGroupSpec("b", 0, quorum=1),
    ])
    spec.validate()
    assert spec.effective_sentinel_count() == 2
    assert spec.effective_quorum(spec.groups[0]) == 2
    assert spec.effective_quorum(spec.groups[1]) == 1

    with pytest.raises(DuplicateGroupNameError):
        TopologySpec(groups=[ReplicationGroupSpec("a"), ReplicationGroupSpec("a", 2)]).validate()
    with pytest.raises(ValueError):
        TopologySpec(sentinel_count=-1).validate()
    with pytest.raises(ValueError):
        TopologySpec(sentinel_count=1, sentinel_ports=[26379]).validate()
    with pytest.raises(ValueError):
        TopologySpec(groups=[ReplicationGroupSpec("a", -1)]).validate()


@pytest.mark.unit
def test_interpolate_env_vars(monkeypatch):
    monkeypatch.setenv("EMBEDDED_REDIS_TEST_VAR", "value")
    monkeypatch.delenv("EMBEDDED_REDIS_MISSING_VAR", raising=False)
    assert interpolate_env_vars("a: ${EMBEDDED_REDIS_TEST_VAR}") == "a: value"
    assert interpolate_env_vars("a: ${EMBEDDED_REDIS_MISSING_VAR:fallback}") == "a: fallback"
    assert interpolate_env_vars("a: ${EMBEDDED_REDIS_MISSING_VAR}") == "a: "


@pytest.mark.unit
def test_load_server_settings(monkeypatch):
    monkeypatch.delenv("EMBEDDED_REDIS_EXECUTABLE", raising=False)
    monkeypatch.setenv("EMBEDDED_REDIS_HTTP_PORT", "9200")

    settings = Settings()
    settings.load(str(CONFIGS_DIR / "server.yaml"))

    assert settings.log_level == "debug"
    assert settings.debug_log_level
    assert settings.executable == "/usr/bin/redis-server"
    assert settings.startup_timeout == 5
    assert settings.http_port == 9200
    assert settings.server.port == 6390
    assert settings.server.settings == ["appendonly no", 'save ""']
    assert settings.cluster is None


@pytest.mark.unit
def test_load_cluster_settings():
    settings = Settings()
    settings.load(str(CONFIGS_DIR / "cluster.yaml"))

    assert settings.sentinel.down_after_milliseconds == 5000
    assert settings.sentinel.parallel_syncs == 1

    spec = settings.cluster.to_topology_spec()
    assert spec.sentinel_count == 3
    assert spec.quorum == 2
    assert spec.groups == [
        ReplicationGroupSpec("master1", 1),
        ReplicationGroupSpec("master2", 2, quorum=3),
    ]
    assert settings.cluster.server_port == 16379
    assert settings.cluster.sentinel_port == 36379


@pytest.mark.unit
def test_unsupported_options_are_rejected():
    with pytest.raises(ValueError, match="persistence"):
        Settings().load(str(CONFIGS_DIR / "unsupported_option.yaml"))


@pytest.mark.unit
def test_duplicate_groups_in_settings():
    with pytest.raises(DuplicateGroupNameError):
        Settings().load(str(CONFIGS_DIR / "duplicate_groups.yaml"))


@pytest.mark.unit
def test_wrong_log_level(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("log_level: verbose\n")
    with pytest.raises(ValueError, match="wrong log level"):
        Settings().load(str(path))


@pytest.mark.unit
@pytest.mark.parametrize("content,section", [
    ("cluster:\n  replication_groups:\n    - name: m1\n      replica: 1\n", "cluster replication group"),
    ("server:\n  prot: 6380\n", "server"),
    ("sentinel:\n  quorum: 2\n", "sentinel"),
    ("cluster:\n  groups: []\n", "cluster"),
])
def test_unsupported_section_options_are_rejected(tmp_path, content, section):
    path = tmp_path / "config.yaml"
    path.write_text(content)
    with pytest.raises(ValueError, match=f"Unsupported config options in {section}"):
        Settings().load(str(path))


@pytest.mark.unit
def test_cluster_settings_default_to_one_sentinel(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("cluster:\n  replication_groups:\n    - name: m1\n")
    settings = Settings()
    settings.load(str(path))

    spec = settings.cluster.to_topology_spec()
    assert spec.effective_sentinel_count() == 1
    assert spec.sentinel_ports is None

    ports_only = ClusterSettings(sentinel_ports=[26400, 26401], replication_groups=[{"name": "m1"}])
    spec = ports_only.to_topology_spec()
    assert spec.sentinel_count is None
    assert spec.effective_sentinel_count() == 2
