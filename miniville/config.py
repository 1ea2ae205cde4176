"""
Miniville Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Decision gateway (LLM) configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local Ollama server, used when LLM_PROVIDER=ollama
    OLLAMA_BASE_URL: str | None = os.getenv("OLLAMA_BASE_URL")

    # Seconds before a gateway call is abandoned as absent.
    GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "120"))

    # "fast" takes importance from the action decision, "paper" re-rates each
    # memory with a separate gateway call.
    COGNITION_MODE: str = os.getenv("COGNITION_MODE", "fast")

    # Simulation Configuration
    DEFAULT_TICK_COUNT: int = int(os.getenv("DEFAULT_TICK_COUNT", "12"))
    TICK_MINUTES: int = int(os.getenv("TICK_MINUTES", "10"))
    CHAT_KEEP_MINUTES: int = int(os.getenv("CHAT_KEEP_MINUTES", "120"))
    TICK_DELAY_SECONDS: float = float(os.getenv("TICK_DELAY_SECONDS", "0.9"))

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SCENARIOS_DIR: Path = PROJECT_ROOT / "examples" / "scenarios"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.COGNITION_MODE not in ("fast", "paper"):
            raise ValueError(
                f"COGNITION_MODE must be 'fast' or 'paper', got '{cls.COGNITION_MODE}'"
            )

        if cls.TICK_MINUTES <= 0:
            raise ValueError("TICK_MINUTES must be a positive number of simulated minutes")

        if cls.GATEWAY_TIMEOUT_SECONDS <= 0:
            raise ValueError("GATEWAY_TIMEOUT_SECONDS must be positive")

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For a local model, set LLM_PROVIDER=ollama instead."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Miniville Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Cognition Mode: {cls.COGNITION_MODE}",
            f"  Gateway Timeout: {cls.GATEWAY_TIMEOUT_SECONDS}s",
            f"  Default Ticks: {cls.DEFAULT_TICK_COUNT}",
            f"  Tick Duration: {cls.TICK_MINUTES} simulated min",
            f"  Tick Delay: {cls.TICK_DELAY_SECONDS}s",
        ]
        return "\n".join(lines)
