"""
Tests for the license policy YAML loader.
"""

import pytest

from license_engine.config.license_policy import (
    LicensePolicy,
    get_license_policy,
    get_license_policy_loader,
    reset_license_policy_loader,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "LICENSE_POLICY_PATH",
        "LICENSE_WATCH_INTERVAL",
        "LICENSE_EXPIRY_WARNING_DAYS",
        "LICENSE_EXPIRY_JOB_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_license_policy_loader()
    yield
    reset_license_policy_loader()


class TestLicensePolicyLoader:

    def test_loads_yaml_values(self, make_yaml_config):
        path = make_yaml_config("license_policy.yml", {
            "watcher": {"interval_seconds": 15},
            "expiry_warning": {"days": 3, "job_interval_seconds": 600},
            "limit_warning_ratio": 0.8,
            "push": {"topic_prefix": "sq:"},
        })

        policy = get_license_policy_loader(str(path)).get_policy()

        assert policy == LicensePolicy(
            watch_interval_seconds=15,
            expiry_warning_days=3,
            expiry_job_interval_seconds=600,
            limit_warning_ratio=0.8,
            topic_prefix="sq:",
        )

    def test_repository_config_matches_defaults(self):
        assert get_license_policy() == LicensePolicy()

    def test_missing_file_uses_defaults(self, temp_config_dir):
        loader = get_license_policy_loader(str(temp_config_dir / "absent.yml"))

        assert loader.get_policy() == LicensePolicy()

    def test_env_overrides_yaml(self, make_yaml_config, monkeypatch):
        path = make_yaml_config("license_policy.yml", {"watcher": {"interval_seconds": 15}})
        monkeypatch.setenv("LICENSE_WATCH_INTERVAL", "5")
        monkeypatch.setenv("LICENSE_EXPIRY_WARNING_DAYS", "14")

        policy = get_license_policy_loader(str(path)).get_policy()

        assert policy.watch_interval_seconds == 5
        assert policy.expiry_warning_days == 14

    def test_path_from_env(self, make_yaml_config, monkeypatch):
        path = make_yaml_config("custom.yml", {"expiry_warning": {"days": 2}})
        monkeypatch.setenv("LICENSE_POLICY_PATH", str(path))

        assert get_license_policy().expiry_warning_days == 2

    def test_bad_env_value_ignored(self, make_yaml_config, monkeypatch):
        path = make_yaml_config("license_policy.yml", {"watcher": {"interval_seconds": 30}})
        monkeypatch.setenv("LICENSE_WATCH_INTERVAL", "soon")

        assert get_license_policy_loader(str(path)).get_policy().watch_interval_seconds == 30

    def test_singleton(self, make_yaml_config):
        path = make_yaml_config("license_policy.yml", {})

        assert get_license_policy_loader(str(path)) is get_license_policy_loader()

    def test_reload_picks_up_changes(self, make_yaml_config):
        path = make_yaml_config("license_policy.yml", {"watcher": {"interval_seconds": 30}})
        loader = get_license_policy_loader(str(path))

        make_yaml_config("license_policy.yml", {"watcher": {"interval_seconds": 45}})
        loader.reload()

        assert loader.get_policy().watch_interval_seconds == 45


class TestLicensePolicyValidation:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            LicensePolicy(watch_interval_seconds=0)

    def test_rejects_ratio_above_one(self):
        with pytest.raises(ValueError):
            LicensePolicy(limit_warning_ratio=1.5)
