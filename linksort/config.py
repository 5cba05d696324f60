"""Assistant service configuration."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("LINKSORT_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("LINKSORT_PORT", "8000")))
    log_level: str = field(default_factory=lambda: os.getenv("LINKSORT_LOG_LEVEL", "INFO"))

    # Model provider ("anthropic" or "ollama")
    provider: str = field(default_factory=lambda: os.getenv("LINKSORT_PROVIDER", "anthropic"))
    model: str = field(default_factory=lambda: os.getenv("LINKSORT_MODEL", "claude-haiku-4-5"))
    max_tokens: int = field(default_factory=lambda: int(os.getenv("LINKSORT_MAX_TOKENS", "4096")))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("LINKSORT_REQUEST_TIMEOUT", "300")))

    # Anthropic
    anthropic_url: str = field(default_factory=lambda: os.getenv("ANTHROPIC_URL", "https://api.anthropic.com"))
    anthropic_api_key: str = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    anthropic_version: str = field(default_factory=lambda: os.getenv("ANTHROPIC_VERSION", "2023-06-01"))

    # Ollama
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    ollama_model: str = field(default_factory=lambda: os.getenv("OLLAMA_MODEL", "ministral-3:14b"))

    # Agent loop
    max_iterations: int = field(default_factory=lambda: int(os.getenv("LINKSORT_MAX_ITERATIONS", "16")))
    converse_timeout: float = field(default_factory=lambda: float(os.getenv("LINKSORT_CONVERSE_TIMEOUT", "600")))

    # Live output channel
    stream_buffer: int = field(default_factory=lambda: int(os.getenv("LINKSORT_STREAM_BUFFER", "64")))
    stream_publish_timeout: float = field(
        default_factory=lambda: float(os.getenv("LINKSORT_STREAM_PUBLISH_TIMEOUT", "30"))
    )

    @property
    def provider_model(self) -> str:
        """Model name for the configured provider."""
        if self.provider == "ollama":
            return self.ollama_model
        return self.model


# Global config instance
config = Config()
