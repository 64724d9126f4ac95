"""
Tests for configuration validation and defaults.

Tests cover:
- PipelineConfig.from_settings() - all sections
- Defaults class values
- ConfigValidationError on invalid values
- Secrets come from the environment
- String log level coercion ("DEBUG" -> 4)
- Settings properties and load_settings()
"""

import pytest

from snipr.core.config import (
    ConfigValidationError,
    Defaults,
    PipelineConfig,
    Settings,
    load_settings,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_synthesis_defaults(self):
        assert Defaults.SYNTHESIS_TIMEOUT_S == 300.0
        assert Defaults.SYNTHESIS_VOICE_ID == "en-US-BrandonMultilingualNeural"
        assert Defaults.SYNTHESIS_OUTPUT_FORMAT == "audio-16khz-32kbitrate-mono-mp3"

    def test_storage_defaults(self):
        assert Defaults.STORAGE_ATTEMPTS == 3
        assert Defaults.STORAGE_BACKOFF_BASE_S == 2.0
        assert Defaults.STORAGE_BACKEND == "local"

    def test_segmenter_and_jobs_defaults(self):
        assert Defaults.SEGMENTER_MAX_CHARS == 5000
        assert Defaults.JOBS_SECONDS_PER_WORD == 0.4

    def test_feed_defaults(self):
        assert Defaults.FEED_CACHE_MAX_AGE_S == 300
        assert Defaults.FEED_GENERATOR == "Snipr Audio Converter"

    def test_logging_defaults(self):
        assert Defaults.LOGGING_TEXT_PREVIEW_CHARS == 80
        assert Defaults.LOGGING_LEVEL == 2


class TestPipelineConfigFromSettings:
    """Tests for PipelineConfig.from_settings()."""

    def test_from_settings_with_empty_raw(self):
        config = PipelineConfig.from_settings(Settings(raw={}))

        assert config.segmenter.max_chars == Defaults.SEGMENTER_MAX_CHARS
        assert config.synthesis.timeout_s == Defaults.SYNTHESIS_TIMEOUT_S
        assert config.storage.attempts == Defaults.STORAGE_ATTEMPTS
        assert config.storage.public_base_url is None
        assert config.summarizer.provider == "excerpt"
        assert config.documents.backend == "memory"
        assert config.auth.mode == "signed"
        assert config.logging.level == Defaults.LOGGING_LEVEL

    def test_sections_are_parsed(self):
        settings = Settings(raw={
            "segmenter": {"max_chars": 1200},
            "synthesis": {"voice_id": "en-GB-RyanNeural", "timeout_s": 60},
            "storage": {"attempts": 5, "backoff_base_s": 0.5},
            "feed": {"cache_max_age_s": 60, "language": "en-gb"},
            "extractor": {"max_bytes": 2048, "max_document_bytes": 4096},
            "jobs": {"max_workers": 2},
        })
        config = PipelineConfig.from_settings(settings)

        assert config.segmenter.max_chars == 1200
        assert config.synthesis.voice_id == "en-GB-RyanNeural"
        assert config.synthesis.timeout_s == 60.0
        assert config.storage.attempts == 5
        assert config.storage.backoff_base_s == 0.5
        assert config.feed.cache_max_age_s == 60
        assert config.feed.language == "en-gb"
        assert config.jobs.max_workers == 2
        assert config.extractor.max_bytes == 2048
        assert config.extractor.max_document_bytes == 4096

    def test_static_tokens_parsed(self):
        settings = Settings(raw={"auth": {"mode": "static", "tokens": {"t1": "alice"}}})
        config = PipelineConfig.from_settings(settings)

        assert config.auth.mode == "static"
        assert config.auth.tokens == {"t1": "alice"}

    def test_secrets_come_from_environment(self, monkeypatch):
        monkeypatch.setenv("SNIPR_SPEECH_KEY", "speech-key")
        monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
        monkeypatch.setenv("SNIPR_AUTH_SECRET", "auth-secret")
        config = PipelineConfig.from_settings(Settings(raw={}))

        assert config.synthesis.subscription_key == "speech-key"
        assert config.summarizer.api_key == "openai-key"
        assert config.auth.secret == "auth-secret"

    def test_region_env_override(self, monkeypatch):
        monkeypatch.setenv("SNIPR_SPEECH_REGION", "westeurope")
        config = PipelineConfig.from_settings(Settings(raw={"synthesis": {"region": "eastus"}}))
        assert config.synthesis.region == "westeurope"


class TestValidation:
    """ConfigValidationError on invalid values."""

    def test_negative_max_chars_rejected(self):
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"segmenter": {"max_chars": -1}}))

    def test_zero_attempts_rejected(self):
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"storage": {"attempts": 0}}))

    def test_negative_backoff_rejected(self):
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"storage": {"backoff_base_s": -2}}))

    def test_unknown_backend_rejected(self):
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"storage": {"backend": "ftp"}}))

    def test_unknown_engine_rejected(self):
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"synthesis": {"engine": "espeak"}}))

    def test_s3_requires_bucket(self, monkeypatch):
        monkeypatch.delenv("SNIPR_S3_BUCKET", raising=False)
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"storage": {"backend": "s3"}}))

    def test_s3_bucket_from_environment(self, monkeypatch):
        monkeypatch.setenv("SNIPR_S3_BUCKET", "snipr-audio")
        config = PipelineConfig.from_settings(Settings(raw={"storage": {"backend": "s3"}}))
        assert config.storage.bucket == "snipr-audio"

    def test_logging_level_out_of_range(self):
        with pytest.raises(ConfigValidationError):
            PipelineConfig.from_settings(Settings(raw={"logging": {"level": 7}}))

    def test_string_log_level_coerced(self):
        config = PipelineConfig.from_settings(Settings(raw={"logging": {"level": "DEBUG"}}))
        assert config.logging.level == 4


class TestSettings:
    """Settings properties and loading."""

    def test_service_properties_defaults(self):
        settings = Settings(raw={})
        assert settings.service_name == "snipr"
        assert settings.public_base_url == "http://localhost:8000"

    def test_public_base_url_trailing_slash_stripped(self):
        settings = Settings(raw={"service": {"public_base_url": "https://snipr.app/"}})
        assert settings.public_base_url == "https://snipr.app"

    def test_get_pipeline_config(self):
        config = Settings(raw={"jobs": {"max_workers": 3}}).get_pipeline_config()
        assert config.jobs.max_workers == 3

    def test_load_settings_from_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("segmenter:\n  max_chars: 900\n", encoding="utf-8")

        settings = load_settings(str(path))
        assert settings.raw["segmenter"]["max_chars"] == 900

    def test_load_settings_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_load_settings_missing_ok(self, tmp_path):
        settings = load_settings(str(tmp_path / "nope.yaml"), missing_ok=True)
        assert settings.raw == {}
