# ============================================================================
# src/medical_digitizer/config/pipeline_config.py
# ============================================================================
"""
Pipeline Settings
- Timeouts for every blocking call
- Text acceptance threshold
- Concurrency
- Confidence weighting
- Reviewer verification
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    OCR_TIMEOUT: float = Field(
        default=120.0,
        gt=0,
        description="Seconds allowed for the upstream OCR producer"
    )
    DATASTORE_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Seconds allowed for a single datastore read or write"
    )
    RESOLVER_TIMEOUT: float = Field(
        default=15.0,
        gt=0,
        description="Seconds allowed for one patient find-or-create"
    )
    SCAN_TIMEOUT: float = Field(
        default=120.0,
        gt=0,
        description="Seconds allowed for the optional scanning pass"
    )
    MIN_TEXT_LENGTH: int = Field(
        default=10,
        ge=1,
        description="Shorter OCR output is treated as no usable text"
    )
    MAX_CONCURRENT_DOCS: int = Field(
        default=10,
        ge=1,
        description="Maximum documents processed simultaneously"
    )
    COMPLETENESS_FLOOR: float = Field(
        default=0.85,
        ge=0.0, le=1.0,
        description="Confidence multiplier applied when no entity category is filled"
    )
    REQUIRE_VERIFICATION: bool = Field(
        default=False,
        description="Hold digitized documents for reviewer approval instead of completing them"
    )


pipeline_settings = PipelineSettings()
