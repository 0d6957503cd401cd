from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WizardSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WIZARD_", extra="ignore")

    verification_delay_seconds: float = Field(default=2.0, ge=0.0)
    submission_delay_seconds: float = Field(default=3.0, ge=0.0)
    reference_otp: str = Field(default="123456", pattern=r"^[0-9]{6}$")
    application_id_prefix: str = "UD"
    submission_status: str = "SUBMITTED"
