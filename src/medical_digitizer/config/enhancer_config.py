# ============================================================================
# src/medical_digitizer/config/enhancer_config.py
# ============================================================================
"""
AI Entity Enhancement Settings
- OpenAI-compatible chat completions endpoint
- Model and sampling temperature
- Request timeout
"""

from typing import Optional, TYPE_CHECKING

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..extraction.ai_enhancer import AIEnhancementConfig


class EnhancerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    AI_ENHANCER_ENABLED: bool = Field(
        default=False,
        description="Run the AI entity enhancement pass after local extraction"
    )
    AI_ENHANCER_ENDPOINT: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        description="Chat completions URL"
    )
    AI_ENHANCER_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Model name sent with every request"
    )
    AI_ENHANCER_TEMPERATURE: float = Field(
        default=0.1,
        ge=0.0, le=2.0,
        description="Sampling temperature (low = deterministic extraction)"
    )
    AI_ENHANCER_API_KEY: Optional[str] = Field(
        default=None,
        description="Bearer token for the endpoint"
    )
    AI_ENHANCER_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        description="Seconds before the enhancement call falls back to local results"
    )
    AI_ENHANCER_MAX_TOKENS: int = Field(
        default=1000,
        gt=0,
        description="Maximum tokens in the enhancement reply"
    )

    def to_enhancement_config(self) -> Optional["AIEnhancementConfig"]:
        """
        Build the per-call enhancement config, or None when disabled.

        Raises:
            ConfigurationError: enabled without an endpoint or model
        """
        if not self.AI_ENHANCER_ENABLED:
            return None

        from ..extraction.ai_enhancer import AIEnhancementConfig

        for name in ("AI_ENHANCER_ENDPOINT", "AI_ENHANCER_MODEL"):
            if not getattr(self, name).strip():
                raise ConfigurationError(f"{name} must be set when AI_ENHANCER_ENABLED is true")

        return AIEnhancementConfig(
            endpoint=self.AI_ENHANCER_ENDPOINT,
            model=self.AI_ENHANCER_MODEL,
            temperature=self.AI_ENHANCER_TEMPERATURE,
            api_key=self.AI_ENHANCER_API_KEY,
            timeout=self.AI_ENHANCER_TIMEOUT,
            max_tokens=self.AI_ENHANCER_MAX_TOKENS,
        )


enhancer_settings = EnhancerSettings()
