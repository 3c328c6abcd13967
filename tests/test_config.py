"""Tests for configuration loading."""

import pytest

from lattice.config import (
    LatticeConfig,
    LatticeConfigLoader,
    SynthesisSettings,
    list_available_presets,
    load_config,
)


class TestPresets:
    """Tests for configuration presets."""

    def test_defaults(self):
        config = LatticeConfig()
        assert config.preset == "default"
        assert config.solver.fuzzy_limit == 10
        assert config.synthesis.reuse_top_k == 3
        assert config.session.check_types

    def test_minimal(self):
        config = LatticeConfig.from_preset("minimal")
        assert config.synthesis.knowledge_base is False
        assert config.synthesis.reuse_top_k == 0
        assert config.synthesis.max_extractors == 1
        assert config.session.check_types is False

    def test_thorough(self):
        config = LatticeConfig.from_preset("thorough")
        assert config.synthesis.max_extractors == 10
        assert config.solver.max_logged_items == 10
        assert config.solver.fuzzy_limit == 10

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown preset: turbo"):
            LatticeConfig.from_preset("turbo")

    def test_list(self):
        assert list_available_presets() == ["default", "minimal", "thorough"]


class TestFromDict:
    """Tests for LatticeConfig.from_dict."""

    def test_sections_override_preset(self):
        config = LatticeConfig.from_dict(
            {"preset": "thorough", "synthesis": {"reuse_top_k": 1}, "session": {"strict_types": True}}
        )
        assert config.preset == "thorough"
        assert config.synthesis.reuse_top_k == 1
        assert config.synthesis.max_extractors == 10
        assert config.session.strict_types is True

    def test_round_trip(self):
        config = LatticeConfig.from_preset("minimal")
        assert LatticeConfig.from_dict(config.to_dict()).to_dict() == config.to_dict()

    def test_settings_from_dict(self):
        settings = SynthesisSettings.from_dict({"cache_size": 5})
        assert settings.cache_size == 5
        assert settings.max_alternation == 10


class TestLoadConfig:
    """Tests for load_config()."""

    def test_lattice_toml(self, tmp_path):
        path = tmp_path / "lattice.toml"
        path.write_text('[lattice]\npreset = "minimal"\n\n[lattice.solver]\nfuzzy_limit = 3\n')
        config = load_config(path)
        assert config.preset == "minimal"
        assert config.solver.fuzzy_limit == 3

    def test_pyproject(self, tmp_path):
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\nname = "x"\n\n[tool.lattice.session]\nstrict_types = true\n')
        assert load_config(path).session.strict_types is True

    def test_directory(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[tool.lattice.solver]\nfuzzy_limit = 4\n")
        assert load_config(tmp_path).solver.fuzzy_limit == 4

        (tmp_path / "lattice.toml").write_text("[lattice.solver]\nfuzzy_limit = 7\n")
        assert load_config(tmp_path).solver.fuzzy_limit == 7

    def test_missing(self, tmp_path):
        assert load_config(tmp_path / "nope.toml").to_dict() == LatticeConfig().to_dict()
        assert load_config(tmp_path).to_dict() == LatticeConfig().to_dict()

    def test_file_without_section(self, tmp_path):
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\nname = "x"\n')
        assert load_config(path).preset == "default"


class TestLoader:
    def test_builder(self):
        config = (
            LatticeConfigLoader()
            .with_preset("thorough")
            .with_fuzzy_limit(3)
            .with_max_logged_items(2)
            .with_max_extractors(4)
            .with_knowledge_base(False, top_k=0)
            .with_strict_types()
            .build()
        )
        assert config.preset == "thorough"
        assert config.solver.fuzzy_limit == 3
        assert config.solver.max_logged_items == 2
        assert config.synthesis.max_extractors == 4
        assert config.synthesis.knowledge_base is False
        assert config.synthesis.reuse_top_k == 0
        assert config.session.strict_types is True
