from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from invmem_core.config import EngineConfig, InvmemConfig
from invmem_core.errors import ConfigError


class TestConfig:
    def test_default_config(self):
        config = InvmemConfig()
        assert config.engine.storage_path == "./memory.db"
        assert config.engine.min_confidence_to_apply == 0.45
        assert config.engine.min_confidence_to_auto_accept == 0.7
        assert config.engine.decay_on_open is True
        assert config.logging.level == "INFO"

    def test_from_toml_missing_file(self):
        config = InvmemConfig.from_toml("/nonexistent/path/invmem.toml")
        assert config == InvmemConfig()  # Returns defaults

    def test_from_toml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write('''
[engine]
storage_path = "/tmp/invoices.db"
min_confidence_to_apply = 0.3
min_confidence_to_auto_accept = 0.9
decay_on_open = false
unknown_key = "ignored"

[logging]
level = "DEBUG"
json_output = true
''')
            f.flush()
            config = InvmemConfig.from_toml(f.name)

        assert config.engine.storage_path == "/tmp/invoices.db"
        assert config.engine.min_confidence_to_apply == 0.3
        assert config.engine.min_confidence_to_auto_accept == 0.9
        assert config.engine.decay_on_open is False
        assert config.logging.level == "DEBUG"
        assert config.logging.json_output is True

        Path(f.name).unlink()

    def test_invalid_toml_raises(self, tmp_path: Path):
        path = tmp_path / "invmem.toml"
        path.write_text("[engine\nstorage_path = ")
        with pytest.raises(ConfigError, match="Cannot read config"):
            InvmemConfig.from_toml(path)

    def test_section_must_be_table(self, tmp_path: Path):
        path = tmp_path / "invmem.toml"
        path.write_text('engine = "fast"\n')
        with pytest.raises(ConfigError):
            InvmemConfig.from_toml(path)


class TestEngineConfigValidation:
    @pytest.mark.parametrize(
        "apply, auto_accept",
        [(-0.1, 0.7), (0.45, 1.2), (0.8, 0.7)],
    )
    def test_rejects_bad_thresholds(self, apply: float, auto_accept: float):
        with pytest.raises(ConfigError):
            EngineConfig(
                min_confidence_to_apply=apply,
                min_confidence_to_auto_accept=auto_accept,
            )

    @pytest.mark.parametrize(
        "line",
        [
            'min_confidence_to_apply = "0.5"',
            "min_confidence_to_auto_accept = true",
            "decay_on_open = 1",
            "storage_path = 42",
        ],
    )
    def test_wrong_types_in_toml_raise_config_error(
        self, tmp_path: Path, line: str
    ):
        path = tmp_path / "invmem.toml"
        path.write_text(f"[engine]\n{line}\n")
        with pytest.raises(ConfigError):
            InvmemConfig.from_toml(path)

    def test_wrong_logging_types_raise_config_error(self, tmp_path: Path):
        path = tmp_path / "invmem.toml"
        path.write_text("[logging]\nlevel = 10\n")
        with pytest.raises(ConfigError):
            InvmemConfig.from_toml(path)

    def test_equal_thresholds_allowed(self):
        config = EngineConfig(
            min_confidence_to_apply=0.6, min_confidence_to_auto_accept=0.6
        )
        assert config.min_confidence_to_apply == 0.6


class TestConfigLayering:
    def test_defaults_without_files(self, fake_home: Path):
        assert InvmemConfig.load() == InvmemConfig()

    def test_global_config(self, fake_home: Path):
        (fake_home / ".invmem" / "config.toml").write_text(
            '[engine]\nstorage_path = "/data/global.db"\n'
        )
        config = InvmemConfig.load()
        assert config.engine.storage_path == "/data/global.db"

    def test_project_overrides_global_per_key(self, fake_home: Path):
        (fake_home / ".invmem" / "config.toml").write_text(
            '[engine]\nstorage_path = "/data/global.db"\n'
            "min_confidence_to_apply = 0.5\n"
        )
        Path("invmem.toml").write_text(
            '[engine]\nstorage_path = "project.db"\n'
        )
        config = InvmemConfig.load()
        assert config.engine.storage_path == "project.db"
        assert config.engine.min_confidence_to_apply == 0.5

    def test_dot_invmem_dir_preferred_over_root_file(self, fake_home: Path):
        Path(".invmem").mkdir()
        Path(".invmem/config.toml").write_text(
            '[logging]\nlevel = "WARNING"\n'
        )
        Path("invmem.toml").write_text('[logging]\nlevel = "DEBUG"\n')
        assert InvmemConfig.load().logging.level == "WARNING"

    def test_explicit_project_dir(self, fake_home: Path, tmp_path: Path):
        project = tmp_path / "elsewhere"
        project.mkdir()
        (project / "invmem.toml").write_text(
            "[engine]\ndecay_on_open = false\n"
        )
        assert InvmemConfig.load(project).engine.decay_on_open is False
