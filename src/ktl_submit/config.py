"""Runtime configuration for the KTL submission pipeline.

Values are read from ``KTL_*`` environment variables; the defaults match the
production labview endpoint and the retry policy used by the field app
(three attempts, 2 s base delay doubling per retry).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.models import ArchiveMode


class SubmissionSettings(BaseSettings):
    """Pydantic settings container for artifact generation and delivery."""

    model_config = SettingsConfigDict(env_prefix="KTL_")

    base_url: str = Field(
        default="https://mobile.ktl.re.kr/labview/api",
        description="Root URL of the KTL labview API.",
    )
    upload_endpoint: str = Field(
        default="/uploadfiles",
        description="Multipart endpoint receiving generated artifacts.",
    )
    env_endpoint: str = Field(
        default="/env",
        description="JSON endpoint receiving the mapped record.",
    )
    request_timeout_seconds: float = Field(
        default=90.0,
        gt=0,
        description="Timeout applied to each HTTP request in seconds.",
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per phase, including the first one.",
    )
    retry_base_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay before the first retry in seconds.",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the delay after every retry.",
    )
    snapshot_width_px: int = Field(
        default=800,
        ge=200,
        description="Layout width of the entry table snapshot.",
    )
    snapshot_scale: float = Field(
        default=1.5,
        gt=0,
        description="Rasterization scale factor of the entry table snapshot.",
    )
    composite_quality: int = Field(
        default=90,
        ge=1,
        le=95,
        description="JPEG quality of the composite contact sheet.",
    )
    composite_max_dimension_px: int = Field(
        default=3000,
        ge=300,
        description="Upper bound for either side of the composite canvas.",
    )
    font_path: Path | None = Field(
        default=None,
        description="TrueType font used for stamps and tables (CJK capable recommended).",
    )
    archive_mode: ArchiveMode = Field(
        default=ArchiveMode.STAMPED,
        description="Whether archive members are stamped PNGs or the raw photos.",
    )
    operator: str = Field(
        default="",
        description="Default operator name written to UPDATE_USER.",
    )

    @property
    def upload_url(self) -> str:
        return self.base_url.rstrip("/") + self.upload_endpoint

    @property
    def env_url(self) -> str:
        return self.base_url.rstrip("/") + self.env_endpoint

    @classmethod
    def build_default(cls) -> "SubmissionSettings":
        """Construct settings from the environment with production defaults."""

        return cls()


__all__ = ["SubmissionSettings"]
