"""部署参数存储与应用设置测试"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from provisioner.core.config import Settings, get_settings, init_settings
from provisioner.core.config_store import DEFAULTS, ConfigStore, is_secret_key
from provisioner.core.exceptions import ConfigError, PersistenceError
from provisioner.core.models import RunMode
from provisioner.utils.yaml_io import load_yaml

# =========================================================================
# config_store.py
# =========================================================================


class TestConfigStoreLoad:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "conf.yml")
        assert store.load() == DEFAULTS
        assert store.dry_run is True
        assert store.mode is RunMode.DRY_RUN

    def test_unknown_keys_survive_save(self, tmp_path: Path) -> None:
        p = tmp_path / "conf.yml"
        p.write_text("DRY_RUN: 0\nFUTURE_KEY: keep-me\n", encoding="utf-8")
        store = ConfigStore(p)

        assert store.load()["FUTURE_KEY"] == "keep-me"
        store.set("ENABLE_AUTO_REBOOT", "0")

        on_disk = load_yaml(p)
        assert on_disk["FUTURE_KEY"] == "keep-me"
        assert on_disk["DRY_RUN"] == 0
        assert on_disk["ENABLE_AUTO_REBOOT"] == 0

    def test_load_is_idempotent(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "conf.yml", defaults={"DP_VERSION": "6.2.1"})
        assert store.load() == store.load()
        assert not (tmp_path / "conf.yml").exists()

    def test_catalog_defaults_extend_and_override(self, tmp_path: Path) -> None:
        store = ConfigStore(
            tmp_path / "conf.yml",
            defaults={"AUTO_REBOOT_AFTER_STEP_ID": "03 05", "DP_VERSION": "6.2.1"},
        )
        assert store.keys() == [
            "DRY_RUN", "ENABLE_AUTO_REBOOT", "AUTO_REBOOT_AFTER_STEP_ID", "DP_VERSION",
        ]
        assert store.reboot_after == frozenset({"03", "05"})

    def test_corrupt_file(self, tmp_path: Path) -> None:
        p = tmp_path / "conf.yml"
        p.write_text("DRY_RUN: [\n", encoding="utf-8")
        with pytest.raises(PersistenceError):
            ConfigStore(p).load()


class TestConfigStoreSet:
    @pytest.mark.parametrize(("raw", "expected"), [
        ("0", 0), ("1", 1), ("yes", 1), ("off", 0), (0, 0),
    ])
    def test_int_coercion(self, tmp_path: Path, raw, expected: int) -> None:
        store = ConfigStore(tmp_path / "conf.yml")
        assert store.set("DRY_RUN", raw) == expected
        assert store.dry_run is bool(expected)

    def test_invalid_int(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "conf.yml")
        with pytest.raises(ConfigError, match="整数"):
            store.set("DRY_RUN", "maybe")
        assert not (tmp_path / "conf.yml").exists()

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "conf.yml")
        with pytest.raises(ConfigError, match="未知配置项"):
            store.set("NOT_A_KEY", "x")

    def test_set_persists_immediately(self, tmp_path: Path) -> None:
        p = tmp_path / "conf.yml"
        ConfigStore(p, defaults={"DP_VERSION": "6.2.1"}).set("DP_VERSION", "6.3.0")
        assert ConfigStore(p, defaults={"DP_VERSION": "6.2.1"}).get("DP_VERSION") == "6.3.0"

    def test_failed_save_rolls_back_memory(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "conf.yml")
        with patch(
            "provisioner.core.config_store.save_yaml", side_effect=OSError("ro"),
        ):
            with pytest.raises(PersistenceError):
                store.set("DRY_RUN", "0")
        assert store.get("DRY_RUN") == 1

    def test_snapshot_is_read_only_copy(self, tmp_path: Path) -> None:
        store = ConfigStore(tmp_path / "conf.yml")
        snap = store.snapshot()
        with pytest.raises(TypeError):
            snap["DRY_RUN"] = 0  # type: ignore[index]
        store.set("DRY_RUN", "0")
        assert snap["DRY_RUN"] == 1

    def test_secret_values(self, tmp_path: Path) -> None:
        store = ConfigStore(
            tmp_path / "conf.yml",
            defaults={"ACPS_USERNAME": "alice", "ACPS_PASSWORD": "", "API_TOKEN": ""},
        )
        assert store.secret_values() == []
        store.set("ACPS_PASSWORD", "S3cretPw")
        store.set("API_TOKEN", "tok-1")
        assert store.secret_values() == ["S3cretPw", "tok-1"]
        assert is_secret_key("acps_password")
        assert not is_secret_key("ACPS_USERNAME")

    def test_reboot_disabled(self, tmp_path: Path) -> None:
        store = ConfigStore(
            tmp_path / "conf.yml", defaults={"AUTO_REBOOT_AFTER_STEP_ID": "03"},
        )
        store.set("ENABLE_AUTO_REBOOT", "0")
        assert store.reboot_after == frozenset()


# =========================================================================
# config.py
# =========================================================================


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(state_dir="/var/lib/prov")
        assert s.state_path == Path("/var/lib/prov/install.state.yml")
        assert s.config_path == Path("/var/lib/prov/install.conf.yml")
        assert s.event_log_path == Path("/var/lib/prov/events.jsonl")
        assert s.log_path == Path("/var/lib/prov/install.log")

    def test_explicit_paths_win(self) -> None:
        s = Settings(state_dir="/x", state_file="/tmp/custom.yml")
        assert s.state_path == Path("/tmp/custom.yml")

    def test_from_file_extra(self, tmp_path: Path) -> None:
        p = tmp_path / "settings.yml"
        p.write_text("state_dir: /srv/st\nlog_tail_lines: 50\nsite: lab\n", encoding="utf-8")
        s = Settings.from_file(str(p))
        assert s.state_dir == "/srv/st"
        assert s.log_tail_lines == 50
        assert s.extra == {"site": "lab"}

    def test_from_missing_file(self, tmp_path: Path) -> None:
        assert Settings.from_file(str(tmp_path / "none.yml")) == Settings()

    def test_from_bad_file(self, tmp_path: Path) -> None:
        p = tmp_path / "settings.yml"
        p.write_text("state_dir: [\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            Settings.from_file(str(p))

    def test_init_settings_sets_global(self, tmp_path: Path) -> None:
        p = tmp_path / "settings.yml"
        p.write_text("state_dir: /srv/other\n", encoding="utf-8")
        s = init_settings(str(p))
        assert get_settings() is s
        assert s.to_dict()["state_dir"] == "/srv/other"
