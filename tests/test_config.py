# tests/test_config.py
"""Test configuration loading and validation"""

from pathlib import Path

import pytest

from spot_matcher.core.config import (
    PROFILES,
    ProcessingConfig,
    get_profile,
    load_config,
)
from spot_matcher.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the caller's environment out of configuration tests"""
    for name in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTMATCH_OUTPUT_DIR", "SPOTMATCH_PROFILE"):
        monkeypatch.delenv(name, raising=False)


def write_config(directory: Path, content: str) -> Path:
    path = directory / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadConfig:
    """Test reading config.yaml"""

    def test_missing_default_file_gives_defaults(self, temp_dir, monkeypatch):
        """Test that no config.yaml in the working directory is fine"""
        monkeypatch.chdir(temp_dir)

        config = load_config()

        assert config.processing == PROFILES["background"]
        assert config.matching.per_query_timeout == 3.0
        assert not config.spotify.is_configured

    def test_missing_explicit_file(self, temp_dir):
        """Test that an explicit path must exist"""
        with pytest.raises(ConfigError):
            load_config(temp_dir / "nope.yaml")

    def test_empty_file(self, temp_dir):
        """Test that an empty file means all defaults"""
        config = load_config(write_config(temp_dir, ""))

        assert config.processing.profile == "background"

    def test_full_file(self, temp_dir):
        """Test reading every section"""
        path = write_config(temp_dir, f"""
spotify:
  client_id: "abc"
  client_secret: "def"
search:
  rate_limit: 5
  language: it
matching:
  per_query_timeout: 2
  track_budget: 6.5
  official_threshold: 3
  fallback_to_first: false
  failed_cache_ttl: 600
processing:
  profile: fast
  batch_size: 25
output:
  directory: "{temp_dir.as_posix()}/out"
  console_level: debug
jobs:
  retention_hours: 2
""")

        config = load_config(path)

        assert config.spotify.is_configured
        assert config.search.rate_limit == 5
        assert config.search.language == "it"
        assert config.matching.per_query_timeout == 2.0
        assert config.matching.official_threshold == 3
        assert not config.matching.fallback_to_first
        assert config.matching.failed_cache_ttl == 600.0
        assert config.processing.profile == "fast"
        assert config.processing.batch_size == 25
        assert config.processing.global_timeout == PROFILES["fast"].global_timeout
        assert config.output.directory == temp_dir / "out"
        assert config.output.database_path == temp_dir / "out" / "results.db"
        assert config.output.console_level == "DEBUG"
        assert config.jobs.retention_seconds == 7200.0

    def test_invalid_yaml(self, temp_dir):
        """Test that broken YAML is reported"""
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(temp_dir, "spotify: [unclosed"))
        assert "YAML" in str(exc_info.value)

    def test_non_mapping(self, temp_dir):
        """Test that the top level must be a mapping"""
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "- a\n- b\n"))

    def test_section_must_be_mapping(self, temp_dir):
        """Test section shape validation"""
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "matching: 3\n"))

    @pytest.mark.parametrize("content", [
        "matching:\n  per_query_timeout: -1\n",
        "matching:\n  per_query_timeout: fast\n",
        "matching:\n  max_queries_per_pass: 11\n",
        "matching:\n  max_passes: 3\n",
        "matching:\n  official_threshold: true\n",
        "matching:\n  fallback_to_first: maybe\n",
        "processing:\n  batch_size: 2.5\n",
        "processing:\n  profile: turbo\n",
        "output:\n  console_level: LOUD\n",
    ])
    def test_invalid_values(self, temp_dir, content):
        """Test value validation"""
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, content))

    def test_timeouts_must_nest(self, temp_dir):
        """Test that an inner timeout cannot exceed an outer one"""
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(temp_dir, "matching:\n  track_budget: 60\n"))
        assert "matching.track_budget" in str(exc_info.value)

        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "processing:\n  profile: fast\n  global_timeout: 5\n"))

        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, "processing:\n  salvage_timeout: 40\n"))


class TestEnvironment:
    """Test environment overrides"""

    def test_credentials_from_environment(self, temp_dir, monkeypatch):
        """Test that env credentials win over the file"""
        monkeypatch.setenv("SPOTIFY_CLIENT_ID", "env_id")
        monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "env_secret")

        config = load_config(write_config(temp_dir, 'spotify:\n  client_id: "file_id"\n'))

        assert config.spotify.client_id == "env_id"
        assert config.spotify.client_secret == "env_secret"

    def test_output_and_profile_from_environment(self, temp_dir, monkeypatch):
        """Test the output directory and profile overrides"""
        monkeypatch.setenv("SPOTMATCH_OUTPUT_DIR", str(temp_dir / "env_out"))
        monkeypatch.setenv("SPOTMATCH_PROFILE", "chunked")

        config = load_config(write_config(temp_dir, "processing:\n  profile: fast\n"))

        assert config.output.directory == temp_dir / "env_out"
        assert config.processing.profile == "chunked"
        assert config.processing.adaptive_chunks


class TestProfiles:
    """Test the processing profiles"""

    def test_known_profiles(self):
        """Test that every profile is a ProcessingConfig named after itself"""
        assert set(PROFILES) == {"fast", "background", "chunked"}
        for name, profile in PROFILES.items():
            assert isinstance(profile, ProcessingConfig)
            assert profile.profile == name

    def test_fast_profile_has_deadline(self):
        """Test that only the fast profile has a global timeout"""
        assert get_profile("fast").global_timeout is not None
        assert get_profile("background").global_timeout is None

    def test_unknown_profile(self):
        """Test the error for an unknown profile"""
        with pytest.raises(ConfigError) as exc_info:
            get_profile("turbo")
        assert exc_info.value.details["available"] == ["background", "chunked", "fast"]


class TestExplicitProfile:
    """Test load_config(profile=...)"""

    def test_explicit_profile_keeps_file_overrides(self, temp_dir, monkeypatch):
        """Test that the explicit profile replaces only the base profile"""
        monkeypatch.setenv("SPOTMATCH_PROFILE", "chunked")
        path = write_config(temp_dir, "processing:\n  profile: background\n  batch_size: 5\n")

        config = load_config(path, profile="fast")

        assert config.processing.profile == "fast"
        assert config.processing.batch_size == 5
        assert config.processing.global_timeout == get_profile("fast").global_timeout
        assert not config.processing.retry_failed

    def test_explicit_profile_is_validated(self, temp_dir):
        """Test that timeouts must nest under the explicit profile"""
        path = write_config(temp_dir, "matching:\n  track_budget: 15\n")

        assert load_config(path).matching.track_budget == 15.0
        with pytest.raises(ConfigError):
            load_config(path, profile="fast")

    def test_explicit_profile_without_file(self, temp_dir, monkeypatch):
        """Test the profile when no config.yaml exists"""
        monkeypatch.chdir(temp_dir)

        assert load_config(profile="chunked").processing.adaptive_chunks

    def test_unknown_explicit_profile(self, temp_dir):
        """Test that an unknown profile name is a configuration error"""
        with pytest.raises(ConfigError):
            load_config(write_config(temp_dir, ""), profile="turbo")
