# ============================================================================
# src/medical_digitizer/config/base_config.py
# ============================================================================
"""
Base Configuration
- Datastore location
- Record attribution
- Facility details used in formatted records
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseSettingsConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_PATH: Path = Field(
        default=Path("data/digitizer.db"),
        description="SQLite database holding documents, patients and audit logs"
    )

    DEFAULT_CREATED_BY: Optional[str] = Field(
        default=None,
        description="User id stamped on rows when the caller supplies none"
    )

    FACILITY_NAME: str = Field(
        default="University Health Services",
        description="Facility shown in the header of digitized records"
    )

    def create_directories(self):
        """Create the datastore directory if it doesn't exist"""
        self.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)


# Global instance
base_settings = BaseSettingsConfig()
