"""Configuration loading and validation for tabsense."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os

import yaml


@dataclass
class SessionConfig:
    """Model session lifecycle configuration (seconds unless noted)."""

    stall_timeout: float = 120.0  # No-progress window before a download is stalled
    download_timeout: float = 15 * 60.0  # Master deadline per attempt
    max_retries: int = 3  # Advisory cap; a fresh activation is always honored
    availability_timeout: float = 1.0
    download_start_warning: float = 10.0  # Warn if the monitor never attaches
    attach_grace: float = 0.1
    preparing_delay: float = 0.5
    expected_languages: list[str] = field(default_factory=lambda: ["en"])
    store_prefix: str = "tabsense:"


@dataclass
class ChunkingConfig:
    """Text chunking configuration (characters)."""

    chunk_size: int = 3000
    overlap: int = 200


@dataclass
class SummaryConfig:
    """Summarization pipeline configuration."""

    stage_timeout: float = 30.0
    truncation_budget: int = 8000  # ~2000 tokens
    fallback_length: int = 500
    fallback_max_sentences: int = 5
    max_chunks: int = 10
    max_recursion_depth: int = 3
    capacity_ratio: float = 0.8  # Share of capacity used before splitting
    chars_per_token: int = 4
    min_sentence_length: int = 20
    max_filtered_chars: int = 50000
    type: str = "tldr"
    format: str = "plain-text"
    length: str = "medium"
    output_languages: list[str] = field(default_factory=lambda: ["en", "es", "ja"])
    shared_context: str = (
        "Summarize the substantive content of the page in 100-150 words. "
        "Use a clear, neutral tone."
    )


@dataclass
class TranslationConfig:
    """Translation cache configuration."""

    max_entries: Optional[int] = 16  # None keeps every translator
    languages: list[str] = field(
        default_factory=lambda: ["en", "es", "ja", "fr", "de", "pt", "it", "zh"]
    )


@dataclass
class OllamaConfig:
    """Local Ollama server configuration."""

    host: str = "http://localhost:11434"
    model: str = "llama3.2:3b"
    timeout: float = 60.0  # Per-request timeout
    context_window: int = 4096  # Tokens; reported as the summarizer input quota


@dataclass
class StoreConfig:
    """Persistent key-value store configuration."""

    path: Optional[str] = None

    def get_path(self) -> str:
        """Get the store path, using the XDG data dir if not specified."""
        if self.path:
            return os.path.expanduser(self.path)
        data_home = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
        return f"{data_home}/tabsense/store.json"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    debug_to_file: bool = True  # JSON debug logs under ~/.local/share/tabsense/logs/
    use_colors: bool = True


@dataclass
class Config:
    """Main configuration container."""

    session: SessionConfig = field(default_factory=SessionConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load configuration from file.

        Args:
            path: Optional path to config file. If not provided, searches
                  XDG config locations.

        Returns:
            Loaded configuration with defaults for missing values.
        """
        config_path: Optional[Path] = None

        if path:
            config_path = Path(path)
        else:
            xdg_config = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
            user_config = Path(xdg_config) / "tabsense" / "config.yaml"

            if user_config.exists():
                config_path = user_config
            else:
                system_config = Path("/etc/tabsense/config.yaml")
                if system_config.exists():
                    config_path = system_config

        if config_path and config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            return cls._from_dict(data)

        return cls()

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create config from dictionary."""
        return cls(
            session=SessionConfig(**data.get("session", {})),
            chunking=ChunkingConfig(**data.get("chunking", {})),
            summary=SummaryConfig(**data.get("summary", {})),
            translation=TranslationConfig(**data.get("translation", {})),
            ollama=OllamaConfig(**data.get("ollama", {})),
            store=StoreConfig(**data.get("store", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )
