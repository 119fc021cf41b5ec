"""Integration tests for configuration loading."""

from pathlib import Path

import pytest

from src.config.loader import ConfigLoader, ConfigValidationError
from src.config.schemas import SourceMethod
from src.store.models import Tone, Topic


REPO_CONFIG_DIR = Path(__file__).parent.parent.parent / "config"

VALID_PIPELINE = """
version: "1.0"
sources:
  - id: feed-one
    name: Feed One
    url: https://example.com/one.xml
    trust: 0.9
  - id: feed-two
    name: Feed Two
    url: https://example.com/two.json
    method: json_feed
    enabled: false
schedule:
  tick_seconds: 30
"""


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


class TestConfigLoaderIntegration:
    """Integration tests for ConfigLoader."""

    @pytest.mark.integration
    def test_load_valid_config(self, tmp_path: Path) -> None:
        """Test loading a valid pipeline file."""
        loader = ConfigLoader()
        config = loader.load(_write(tmp_path, "pipeline.yaml", VALID_PIPELINE))

        assert [s.id for s in config.sources] == ["feed-one", "feed-two"]
        assert config.sources[1].method == SourceMethod.JSON_FEED
        assert [s.id for s in config.enabled_sources] == ["feed-one"]
        assert config.schedule.tick_seconds == 30
        assert config.schedule.collection_period_minutes == 120

    @pytest.mark.integration
    def test_load_produces_checksums(self, tmp_path: Path) -> None:
        """Test that loading records a SHA-256 checksum per file."""
        path = _write(tmp_path, "pipeline.yaml", VALID_PIPELINE)
        loader = ConfigLoader()
        loader.load(path)

        checksum = loader.file_checksums[str(path.resolve())]
        assert len(checksum) == 64

    @pytest.mark.integration
    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test an empty file validates to the default configuration."""
        config = ConfigLoader().load(_write(tmp_path, "pipeline.yaml", ""))
        assert config.sources == []
        assert len(config.topics) == len(Topic)

    @pytest.mark.integration
    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises a validation error."""
        loader = ConfigLoader()
        with pytest.raises(ConfigValidationError):
            loader.load(tmp_path / "absent.yaml")
        assert loader.validation_errors[0]["type"] == "file_not_found"

    @pytest.mark.integration
    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test malformed YAML is reported."""
        loader = ConfigLoader()
        with pytest.raises(ConfigValidationError):
            loader.load(_write(tmp_path, "pipeline.yaml", "sources: [unclosed"))
        assert loader.validation_errors[0]["type"] == "yaml_parse_error"

    @pytest.mark.integration
    def test_validation_errors_collected(self, tmp_path: Path) -> None:
        """Test every pydantic error is listed with its location."""
        content = """
sources:
  - id: Bad Id
    name: Broken
    url: ftp://example.com
"""
        loader = ConfigLoader()
        with pytest.raises(ConfigValidationError) as exc_info:
            loader.load(_write(tmp_path, "pipeline.yaml", content))

        locations = {e["loc"] for e in exc_info.value.errors}
        assert "sources.0.id" in locations
        assert "sources.0.url" in locations
        formatted = exc_info.value.format_errors()
        assert any("Hint:" in line for line in formatted)

    @pytest.mark.integration
    def test_validation_summary_json(self, tmp_path: Path) -> None:
        """Test the summary serializes with stable keys."""
        loader = ConfigLoader()
        loader.load(_write(tmp_path, "pipeline.yaml", VALID_PIPELINE))
        summary = loader.get_validation_summary()
        assert summary["validation_error_count"] == 0
        assert '"file_checksums"' in loader.get_validation_summary_json()


class TestSubscriberImportFile:
    """Tests for loading subscriber import files."""

    @pytest.mark.integration
    def test_load_subscribers(self, tmp_path: Path) -> None:
        """Test profiles are validated and returned."""
        content = """
subscribers:
  - id: alice
    email: Alice@Example.com
    interests: [ai, cloud]
    delivery_slots: ["08:00"]
    tone: technical
    timezone: Europe/Berlin
"""
        profiles = ConfigLoader().load_subscribers(
            _write(tmp_path, "subscribers.yaml", content)
        )
        assert len(profiles) == 1
        assert profiles[0].email == "alice@example.com"
        assert profiles[0].tone == Tone.TECHNICAL

    @pytest.mark.integration
    def test_invalid_subscriber(self, tmp_path: Path) -> None:
        """Test invalid slots are reported."""
        content = """
subscribers:
  - id: bob
    email: bob@example.com
    interests: [ai]
    delivery_slots: ["25:00"]
"""
        loader = ConfigLoader()
        with pytest.raises(ConfigValidationError):
            loader.load_subscribers(_write(tmp_path, "subscribers.yaml", content))
        assert loader.validation_errors[0]["loc"].startswith("subscribers.0")


class TestShippedConfig:
    """Tests for the example configuration shipped with the repository."""

    @pytest.mark.integration
    def test_example_files_validate(self) -> None:
        """Test the example pipeline and subscribers files are valid."""
        loader = ConfigLoader()
        config = loader.load(REPO_CONFIG_DIR / "pipeline.yaml")
        profiles = loader.load_subscribers(REPO_CONFIG_DIR / "subscribers.yaml")

        assert config.enabled_sources
        assert {p.id for p in profiles} == {"alice", "bob"}
