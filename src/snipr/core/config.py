"""
Configuration Management for snipr.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (SNIPR_*, OPENAI_API_KEY)
    2. YAML config file (config/settings.yaml, or $SNIPR_SETTINGS)
    3. Defaults class values

Secrets (speech key, OpenAI key, auth secret, S3 credentials) are only read
from the environment, never from YAML defaults.

Example settings.yaml:
    synthesis:
      engine: azure
      region: westeurope
      voice_id: en-US-BrandonMultilingualNeural

    storage:
      backend: s3
      bucket: snipr-audio
      region: eu-west-1

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Extractor: Article fetch settings
        - Segmenter: Synthesis input ceiling
        - Synthesis: Speech engine and voice
        - Storage: Artifact persistence and retry policy
        - Summarizer: Spoken synopsis generation
        - Feed: RSS channel metadata
        - Jobs: Background execution
        - Documents: Job/feed record persistence
        - Auth: Credential verification
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Content Extraction
    # ─────────────────────────────────────────────────────────────────────────
    EXTRACTOR_TIMEOUT_S = 20.0          # Fetch connect/read timeout
    EXTRACTOR_USER_AGENT = "snipr/0.1 (+https://snipr.app)"
    EXTRACTOR_MAX_BYTES = 5 * 1024 * 1024  # Refuse documents larger than 5MB
    EXTRACTOR_MAX_DOCUMENT_BYTES = 25 * 1024 * 1024  # Refuse EPUB uploads larger than 25MB

    # ─────────────────────────────────────────────────────────────────────────
    # Text Segmentation
    # ─────────────────────────────────────────────────────────────────────────
    SEGMENTER_MAX_CHARS = 5000          # Synthesis engine input ceiling

    # ─────────────────────────────────────────────────────────────────────────
    # Speech Synthesis
    # ─────────────────────────────────────────────────────────────────────────
    SYNTHESIS_ENGINE = "azure"
    SYNTHESIS_REGION = "eastus"
    SYNTHESIS_VOICE_ID = "en-US-BrandonMultilingualNeural"
    SYNTHESIS_LANGUAGE = "en-US"
    SYNTHESIS_PITCH = "+0Hz"
    SYNTHESIS_RATE = "+0%"
    SYNTHESIS_OUTPUT_FORMAT = "audio-16khz-32kbitrate-mono-mp3"
    SYNTHESIS_TIMEOUT_S = 300.0         # Hard per-call ceiling (5 minutes)
    SYNTHESIS_MAX_WORKERS = 8           # Threads available for engine calls

    # ─────────────────────────────────────────────────────────────────────────
    # Artifact Storage
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BACKEND = "local"           # local | s3
    STORAGE_BASE_DIR = "./storage"
    STORAGE_PUBLIC_BASE_URL = "http://localhost:8000/media"  # Local backend only; s3 defaults to the bucket URL
    STORAGE_ATTEMPTS = 3                # Per operation (upload, URL resolution)
    STORAGE_BACKOFF_BASE_S = 2.0        # Sleeps 2s, 4s, 8s... between attempts

    # ─────────────────────────────────────────────────────────────────────────
    # Summarization
    # ─────────────────────────────────────────────────────────────────────────
    SUMMARIZER_PROVIDER = "excerpt"     # excerpt | openai
    SUMMARIZER_MODEL = "gpt-4o-mini"
    SUMMARIZER_MAX_INPUT_CHARS = 3000   # Article prefix sent for summarization
    SUMMARIZER_TIMEOUT_S = 60.0
    SUMMARIZER_EXCERPT_SENTENCES = 3

    # ─────────────────────────────────────────────────────────────────────────
    # Feed Rendering
    # ─────────────────────────────────────────────────────────────────────────
    FEED_GENERATOR = "Snipr Audio Converter"
    FEED_LANGUAGE = "en-us"
    FEED_DEFAULT_ARTWORK = "https://snipr.app/default-podcast-image.jpg"
    FEED_CATEGORY = "Personal"
    FEED_CACHE_MAX_AGE_S = 300

    # ─────────────────────────────────────────────────────────────────────────
    # Jobs
    # ─────────────────────────────────────────────────────────────────────────
    JOBS_MAX_WORKERS = 4                # Concurrent conversion jobs
    JOBS_SECONDS_PER_WORD = 0.4         # Spoken duration estimate

    # ─────────────────────────────────────────────────────────────────────────
    # Document Store
    # ─────────────────────────────────────────────────────────────────────────
    DOCUMENTS_BACKEND = "memory"        # memory | file
    DOCUMENTS_BASE_DIR = "./data"

    # ─────────────────────────────────────────────────────────────────────────
    # Auth
    # ─────────────────────────────────────────────────────────────────────────
    AUTH_MODE = "signed"                # signed | static
    AUTH_TOKEN_MAX_AGE_S = 3600

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80     # Characters to show in text preview
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class ExtractorConfig:
    """Article fetch and upload size configuration."""
    timeout_s: float = Defaults.EXTRACTOR_TIMEOUT_S
    user_agent: str = Defaults.EXTRACTOR_USER_AGENT
    max_bytes: int = Defaults.EXTRACTOR_MAX_BYTES
    max_document_bytes: int = Defaults.EXTRACTOR_MAX_DOCUMENT_BYTES


@dataclass
class SegmenterConfig:
    """
    Text segmentation configuration.

    max_chars is the synthesis engine's input ceiling. Chunk boundaries
    always fall on sentence boundaries.
    """
    max_chars: int = Defaults.SEGMENTER_MAX_CHARS


@dataclass
class SynthesisConfig:
    """
    Speech synthesis configuration.

    The subscription key is read from SNIPR_SPEECH_KEY only.
    """
    engine: str = Defaults.SYNTHESIS_ENGINE
    region: str = Defaults.SYNTHESIS_REGION
    endpoint: Optional[str] = None
    voice_id: str = Defaults.SYNTHESIS_VOICE_ID
    language: str = Defaults.SYNTHESIS_LANGUAGE
    pitch: str = Defaults.SYNTHESIS_PITCH
    rate: str = Defaults.SYNTHESIS_RATE
    output_format: str = Defaults.SYNTHESIS_OUTPUT_FORMAT
    timeout_s: float = Defaults.SYNTHESIS_TIMEOUT_S
    max_workers: int = Defaults.SYNTHESIS_MAX_WORKERS
    subscription_key: Optional[str] = None


@dataclass
class StorageConfig:
    """
    Artifact storage configuration.

    Upload and URL resolution each get `attempts` tries, sleeping
    backoff_base_s * 2**(attempt-1) between tries.
    """
    backend: str = Defaults.STORAGE_BACKEND
    base_dir: str = Defaults.STORAGE_BASE_DIR
    public_base_url: Optional[str] = None
    bucket: Optional[str] = None
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    attempts: int = Defaults.STORAGE_ATTEMPTS
    backoff_base_s: float = Defaults.STORAGE_BACKOFF_BASE_S


@dataclass
class SummarizerConfig:
    """Spoken synopsis configuration."""
    provider: str = Defaults.SUMMARIZER_PROVIDER
    model: str = Defaults.SUMMARIZER_MODEL
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    max_input_chars: int = Defaults.SUMMARIZER_MAX_INPUT_CHARS
    timeout_s: float = Defaults.SUMMARIZER_TIMEOUT_S
    excerpt_sentences: int = Defaults.SUMMARIZER_EXCERPT_SENTENCES


@dataclass
class FeedConfig:
    """RSS channel configuration."""
    generator: str = Defaults.FEED_GENERATOR
    language: str = Defaults.FEED_LANGUAGE
    default_artwork: str = Defaults.FEED_DEFAULT_ARTWORK
    category: str = Defaults.FEED_CATEGORY
    cache_max_age_s: int = Defaults.FEED_CACHE_MAX_AGE_S


@dataclass
class JobsConfig:
    """Background job configuration."""
    max_workers: int = Defaults.JOBS_MAX_WORKERS
    seconds_per_word: float = Defaults.JOBS_SECONDS_PER_WORD


@dataclass
class DocumentStoreConfig:
    """Job/feed record persistence."""
    backend: str = Defaults.DOCUMENTS_BACKEND
    base_dir: str = Defaults.DOCUMENTS_BASE_DIR


@dataclass
class AuthConfig:
    """
    Credential verification configuration.

    Modes:
        signed: Bearer tokens are itsdangerous-signed owner ids
                (secret from SNIPR_AUTH_SECRET)
        static: Bearer tokens are looked up in a fixed token -> owner map
    """
    mode: str = Defaults.AUTH_MODE
    secret: Optional[str] = None
    token_max_age_s: int = Defaults.AUTH_TOKEN_MAX_AGE_S
    tokens: Dict[str, str] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Job lifecycle, stage milestones (default)
        3 = VERBOSE: Per-stage timing, per-chunk progress
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


_VALID_CHOICES = {
    "synthesis.engine": ("azure",),
    "storage.backend": ("local", "s3"),
    "summarizer.provider": ("excerpt", "openai"),
    "documents.backend": ("memory", "file"),
    "auth.mode": ("signed", "static"),
}


@dataclass
class PipelineConfig:
    """
    Validated configuration for the conversion service.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = PipelineConfig.from_settings(settings)
        print(config.storage.attempts)  # Typed access
    """
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    summarizer: SummarizerConfig = field(default_factory=SummarizerConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    documents: DocumentStoreConfig = field(default_factory=DocumentStoreConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PipelineConfig":
        """
        Create PipelineConfig from Settings with validation.

        Reads raw configuration dictionary, applies defaults for missing
        values, overlays secrets from the environment, validates
        constraints, and returns typed configuration.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated PipelineConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Extractor
        # ─────────────────────────────────────────────────────────────────────
        ex_raw = raw.get("extractor", {})
        extractor = ExtractorConfig(
            timeout_s=float(ex_raw.get("timeout_s", Defaults.EXTRACTOR_TIMEOUT_S)),
            user_agent=str(ex_raw.get("user_agent", Defaults.EXTRACTOR_USER_AGENT)),
            max_bytes=int(ex_raw.get("max_bytes", Defaults.EXTRACTOR_MAX_BYTES)),
            max_document_bytes=int(ex_raw.get("max_document_bytes", Defaults.EXTRACTOR_MAX_DOCUMENT_BYTES)),
        )
        cls._validate_positive("extractor.timeout_s", extractor.timeout_s)
        cls._validate_positive("extractor.max_bytes", extractor.max_bytes)

        # ─────────────────────────────────────────────────────────────────────
        # Segmenter
        # ─────────────────────────────────────────────────────────────────────
        seg_raw = raw.get("segmenter", {})
        segmenter = SegmenterConfig(
            max_chars=int(seg_raw.get("max_chars", Defaults.SEGMENTER_MAX_CHARS)),
        )
        cls._validate_positive("segmenter.max_chars", segmenter.max_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Synthesis (key from environment)
        # ─────────────────────────────────────────────────────────────────────
        syn_raw = raw.get("synthesis", {})
        synthesis = SynthesisConfig(
            engine=str(syn_raw.get("engine", Defaults.SYNTHESIS_ENGINE)).lower(),
            region=str(os.getenv("SNIPR_SPEECH_REGION") or syn_raw.get("region", Defaults.SYNTHESIS_REGION)),
            endpoint=syn_raw.get("endpoint"),
            voice_id=str(syn_raw.get("voice_id", Defaults.SYNTHESIS_VOICE_ID)),
            language=str(syn_raw.get("language", Defaults.SYNTHESIS_LANGUAGE)),
            pitch=str(syn_raw.get("pitch", Defaults.SYNTHESIS_PITCH)),
            rate=str(syn_raw.get("rate", Defaults.SYNTHESIS_RATE)),
            output_format=str(syn_raw.get("output_format", Defaults.SYNTHESIS_OUTPUT_FORMAT)),
            timeout_s=float(syn_raw.get("timeout_s", Defaults.SYNTHESIS_TIMEOUT_S)),
            max_workers=int(syn_raw.get("max_workers", Defaults.SYNTHESIS_MAX_WORKERS)),
            subscription_key=os.getenv("SNIPR_SPEECH_KEY"),
        )
        cls._validate_choice("synthesis.engine", synthesis.engine)
        cls._validate_positive("synthesis.timeout_s", synthesis.timeout_s)
        cls._validate_positive("synthesis.max_workers", synthesis.max_workers)

        # ─────────────────────────────────────────────────────────────────────
        # Storage (credentials from environment)
        # ─────────────────────────────────────────────────────────────────────
        st_raw = raw.get("storage", {})
        storage = StorageConfig(
            backend=str(st_raw.get("backend", Defaults.STORAGE_BACKEND)).lower(),
            base_dir=str(st_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            public_base_url=st_raw.get("public_base_url"),
            bucket=os.getenv("SNIPR_S3_BUCKET") or st_raw.get("bucket"),
            region=os.getenv("SNIPR_S3_REGION") or st_raw.get("region"),
            access_key=os.getenv("SNIPR_S3_KEY"),
            secret_key=os.getenv("SNIPR_S3_SECRET"),
            attempts=int(st_raw.get("attempts", Defaults.STORAGE_ATTEMPTS)),
            backoff_base_s=float(st_raw.get("backoff_base_s", Defaults.STORAGE_BACKOFF_BASE_S)),
        )
        cls._validate_choice("storage.backend", storage.backend)
        cls._validate_positive("storage.attempts", storage.attempts)
        cls._validate_non_negative("storage.backoff_base_s", storage.backoff_base_s)
        if storage.backend == "s3" and not storage.bucket:
            raise ConfigValidationError("storage.bucket is required for the s3 backend")

        # ─────────────────────────────────────────────────────────────────────
        # Summarizer (key from environment)
        # ─────────────────────────────────────────────────────────────────────
        sm_raw = raw.get("summarizer", {})
        summarizer = SummarizerConfig(
            provider=str(sm_raw.get("provider", Defaults.SUMMARIZER_PROVIDER)).lower(),
            model=str(sm_raw.get("model", Defaults.SUMMARIZER_MODEL)),
            base_url=sm_raw.get("base_url"),
            api_key=os.getenv("OPENAI_API_KEY"),
            max_input_chars=int(sm_raw.get("max_input_chars", Defaults.SUMMARIZER_MAX_INPUT_CHARS)),
            timeout_s=float(sm_raw.get("timeout_s", Defaults.SUMMARIZER_TIMEOUT_S)),
            excerpt_sentences=int(sm_raw.get("excerpt_sentences", Defaults.SUMMARIZER_EXCERPT_SENTENCES)),
        )
        cls._validate_choice("summarizer.provider", summarizer.provider)
        cls._validate_positive("summarizer.max_input_chars", summarizer.max_input_chars)
        cls._validate_positive("summarizer.timeout_s", summarizer.timeout_s)
        cls._validate_positive("summarizer.excerpt_sentences", summarizer.excerpt_sentences)

        # ─────────────────────────────────────────────────────────────────────
        # Feed
        # ─────────────────────────────────────────────────────────────────────
        fd_raw = raw.get("feed", {})
        feed = FeedConfig(
            generator=str(fd_raw.get("generator", Defaults.FEED_GENERATOR)),
            language=str(fd_raw.get("language", Defaults.FEED_LANGUAGE)),
            default_artwork=str(fd_raw.get("default_artwork", Defaults.FEED_DEFAULT_ARTWORK)),
            category=str(fd_raw.get("category", Defaults.FEED_CATEGORY)),
            cache_max_age_s=int(fd_raw.get("cache_max_age_s", Defaults.FEED_CACHE_MAX_AGE_S)),
        )
        cls._validate_non_negative("feed.cache_max_age_s", feed.cache_max_age_s)

        # ─────────────────────────────────────────────────────────────────────
        # Jobs
        # ─────────────────────────────────────────────────────────────────────
        jb_raw = raw.get("jobs", {})
        jobs = JobsConfig(
            max_workers=int(jb_raw.get("max_workers", Defaults.JOBS_MAX_WORKERS)),
            seconds_per_word=float(jb_raw.get("seconds_per_word", Defaults.JOBS_SECONDS_PER_WORD)),
        )
        cls._validate_positive("jobs.max_workers", jobs.max_workers)
        cls._validate_positive("jobs.seconds_per_word", jobs.seconds_per_word)

        # ─────────────────────────────────────────────────────────────────────
        # Documents
        # ─────────────────────────────────────────────────────────────────────
        dc_raw = raw.get("documents", {})
        documents = DocumentStoreConfig(
            backend=str(dc_raw.get("backend", Defaults.DOCUMENTS_BACKEND)).lower(),
            base_dir=str(dc_raw.get("base_dir", Defaults.DOCUMENTS_BASE_DIR)),
        )
        cls._validate_choice("documents.backend", documents.backend)

        # ─────────────────────────────────────────────────────────────────────
        # Auth (secret from environment)
        # ─────────────────────────────────────────────────────────────────────
        au_raw = raw.get("auth", {})
        auth = AuthConfig(
            mode=str(au_raw.get("mode", Defaults.AUTH_MODE)).lower(),
            secret=os.getenv("SNIPR_AUTH_SECRET"),
            token_max_age_s=int(au_raw.get("token_max_age_s", Defaults.AUTH_TOKEN_MAX_AGE_S)),
            tokens={str(k): str(v) for k, v in (au_raw.get("tokens") or {}).items()},
        )
        cls._validate_choice("auth.mode", auth.mode)
        cls._validate_positive("auth.token_max_age_s", auth.token_max_age_s)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {})
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            extractor=extractor,
            segmenter=segmenter,
            synthesis=synthesis,
            storage=storage,
            summarizer=summarizer,
            feed=feed,
            jobs=jobs,
            documents=documents,
            auth=auth,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_choice(name: str, value: str) -> None:
        """Validate that a value is one of the supported options."""
        choices = _VALID_CHOICES[name]
        if value not in choices:
            raise ConfigValidationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_pipeline_config() to get a validated PipelineConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    @property
    def service_name(self) -> str:
        """Service name used in logs and health output."""
        return str(self.raw.get("service", {}).get("name", "snipr"))

    @property
    def public_base_url(self) -> str:
        """Externally visible base URL of the API (for feed self links)."""
        return str(self.raw.get("service", {}).get("public_base_url", "http://localhost:8000")).rstrip("/")

    def get_pipeline_config(self) -> PipelineConfig:
        """
        Get validated PipelineConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return PipelineConfig.from_settings(self)


def load_settings(path: Optional[str] = None, missing_ok: bool = False) -> Settings:
    """
    Load settings from a YAML configuration file.

    The path defaults to $SNIPR_SETTINGS, then config/settings.yaml.

    Args:
        path: Path to the YAML configuration file.
        missing_ok: Return empty settings (all defaults) instead of raising
            when the file does not exist.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist and
            missing_ok is False.
    """
    p = Path(path or os.getenv("SNIPR_SETTINGS", "config/settings.yaml"))
    if not p.exists():
        if missing_ok:
            return Settings(raw={})
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)
