"""Tests for harness settings and the fixture store"""

import pytest

from cluster_harness import fixtures
from cluster_harness.api.models import ClusterRef, DesiredClusterSpec, VolumeMode
from cluster_harness.config import LATEST_CLUSTER_IMAGE, HarnessSettings
from cluster_harness.errors import HarnessError


class TestSettings:
    def test_defaults(self):
        settings = HarnessSettings()
        assert settings.poll_interval == 5.0
        assert settings.base_timeout == 300.0
        assert settings.cleanup_interval == 1.0
        assert settings.cleanup_timeout == 200.0
        assert settings.current_image == LATEST_CLUSTER_IMAGE

    def test_from_env(self):
        settings = HarnessSettings.from_env({
            "HARNESS_POLL_INTERVAL": "2.5",
            "HARNESS_NAMESPACE": "e2e",
            "HARNESS_LOG_FILE": "",
            "UNRELATED": "x",
        })
        assert settings.poll_interval == 2.5
        assert settings.namespace == "e2e"
        assert settings.log_file is None

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            HarnessSettings.from_env({"HARNESS_BASE_TIMEOUT": "-1"})

    def test_yaml_overlay(self, tmp_path):
        path = tmp_path / "harness.yaml"
        path.write_text("poll_interval: 1\ncleanup_timeout: 60\nnamespace: staging\n")
        settings = HarnessSettings.load(str(path), environ={"HARNESS_POLL_INTERVAL": "3"})
        assert settings.poll_interval == 1.0
        assert settings.cleanup_timeout == 60.0
        assert settings.namespace == "staging"

    def test_config_file_from_environment(self, tmp_path):
        path = tmp_path / "harness.yaml"
        path.write_text("base_timeout: 10\n")
        settings = HarnessSettings.load(environ={"HARNESS_CONFIG": str(path)})
        assert settings.base_timeout == 10.0

    def test_yaml_unknown_key(self, tmp_path):
        path = tmp_path / "harness.yaml"
        path.write_text("poll_intervall: 1\n")
        with pytest.raises(ValueError, match="poll_intervall"):
            HarnessSettings().with_yaml(str(path))

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "harness.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            HarnessSettings().with_yaml(str(path))


@pytest.fixture
def fixture_dirs(tmp_path):
    schemas = tmp_path / "schemas"
    secrets = tmp_path / "secrets"
    schemas.mkdir()
    secrets.mkdir()
    (schemas / "4.6.0.json").write_text('{"type": "object"}')
    (schemas / "nested").mkdir()
    (secrets / "features.conf").write_bytes(b"feature-key\n")
    return str(schemas), str(secrets)


class TestFixtureStore:
    def test_init_once(self, fresh_fixture_store, fixture_dirs):
        store = fixtures.init_fixture_store(*fixture_dirs)
        assert dict(store.schemas) == {"4.6.0.json": '{"type": "object"}'}
        assert dict(store.secrets) == {"features.conf": b"feature-key\n"}
        assert fixtures.get_fixture_store() is store

        with pytest.raises(HarnessError, match="already initialised"):
            fixtures.init_fixture_store(*fixture_dirs)

    def test_read_only(self, fixture_dirs):
        store = fixtures.FixtureStore.load(*fixture_dirs)
        with pytest.raises(TypeError):
            store.schemas["new"] = "{}"

    def test_empty_directory_is_an_error(self, tmp_path, fixture_dirs):
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(HarnessError, match="no fixture file"):
            fixtures.FixtureStore.load(str(empty), fixture_dirs[1])

    def test_missing_directory_is_an_error(self, tmp_path, fixture_dirs):
        with pytest.raises(HarnessError):
            fixtures.FixtureStore.load(fixture_dirs[0], str(tmp_path / "missing"))

    def test_not_initialised(self, fresh_fixture_store):
        with pytest.raises(HarnessError):
            fixtures.get_fixture_store()


class TestSpecBuilders:
    ref = ClusterRef("test", "aerocluster")

    def test_basic_cluster(self):
        spec = fixtures.basic_cluster_spec(self.ref, 2)
        assert spec.size == 2
        assert spec.image == LATEST_CLUSTER_IMAGE
        assert spec.resources.requests == spec.resources.limits
        assert {v.mode for v in spec.storage.volumes} == {VolumeMode.BLOCK, VolumeMode.FILESYSTEM}
        assert spec.access_control.users[0].secret_name == fixtures.AUTH_SECRET_NAME

    def test_retained_storage(self):
        spec = fixtures.basic_cluster_spec(self.ref, 1, cascade_delete=False)
        assert not spec.storage.policy_for(VolumeMode.BLOCK).cascade_delete
        assert not spec.storage.policy_for(VolumeMode.FILESYSTEM).cascade_delete

    def test_round_trips_through_resource_layout(self):
        spec = fixtures.rack_aware_cluster_spec(self.ref, 3, rack_ids=(1, 2))
        data = spec.to_dict()
        assert data["rackConfig"] == {"racks": [{"id": 1}, {"id": 2}]}
        assert DesiredClusterSpec.from_dict(self.ref, data) == spec

    def test_data_in_memory(self):
        spec = fixtures.data_in_memory_cluster_spec(self.ref, 2, 2, multi_pod_per_host=False)
        assert spec.config["namespaces"][0]["storage-engine"] == {"type": "memory"}
        assert [v.mode for v in spec.storage.volumes] == [VolumeMode.FILESYSTEM]
        assert not spec.multi_pod_per_host

    def test_ssd_storage(self):
        spec = fixtures.ssd_storage_cluster_spec(self.ref, 2, 2, multi_pod_per_host=True)
        assert spec.config["namespaces"][0]["replication-factor"] == 2

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            fixtures.basic_cluster_spec(self.ref, 0)
