"""Configuration models for GeoPhoto.

Pydantic v2 models with sensible defaults, works without a config file.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class AcquisitionConfig(BaseModel):
    """Configuration for the acquisition pipeline's attempt loop."""

    max_attempts: int = Field(4, ge=1, description="Attempts per fetch (1 initial + retries)")
    locations_per_attempt: int = Field(5, ge=1, description="Geosearch queries issued per attempt")
    base_radius_m: int = Field(5000, ge=10, description="Search radius on the first attempt")
    radius_growth: float = Field(2.0, ge=1.0, description="Radius multiplier per retry")
    max_radius_m: int = Field(10000, ge=10, description="Upper bound (Commons geosearch caps at 10km)")
    validation_concurrency: int = Field(8, ge=1, description="Concurrent verdict lookups per attempt")
    attempt_delay_seconds: float = Field(0.5, ge=0.0, description="Backoff base between attempts")
    max_attempt_delay_seconds: float = Field(8.0, ge=0.0, description="Backoff ceiling between attempts")
    seed: int | None = Field(None, description="Seed for location shuffling (None = random)")


class RetryConfig(BaseModel):
    """Configuration for the generic retry scheduler."""

    max_attempts: int = Field(3, ge=1, description="Max invocations including the first")
    base_delay_seconds: float = Field(1.0, ge=0.0, description="Exponential backoff base")
    max_delay_seconds: float | None = Field(None, description="Backoff ceiling (None = uncapped)")


class FormatSpec(BaseModel):
    """One image format as recognized by extension and MIME type."""

    extensions: list[str]
    mime_types: list[str]
    enabled: bool = True
    reason: str | None = Field(None, description="Rejection reason (rejected formats only)")


def _default_supported() -> dict[str, FormatSpec]:
    return {
        "jpeg": FormatSpec(extensions=[".jpg", ".jpeg"], mime_types=["image/jpeg"]),
        "png": FormatSpec(extensions=[".png"], mime_types=["image/png"]),
        "webp": FormatSpec(extensions=[".webp"], mime_types=["image/webp"]),
    }


def _default_rejected() -> dict[str, FormatSpec]:
    return {
        "tiff": FormatSpec(
            extensions=[".tiff", ".tif"], mime_types=["image/tiff"],
            reason="Limited browser support",
        ),
        "svg": FormatSpec(
            extensions=[".svg"], mime_types=["image/svg+xml"],
            reason="Not suitable for photographs",
        ),
        "gif": FormatSpec(
            extensions=[".gif"], mime_types=["image/gif"],
            reason="Avoid animated content",
        ),
        "bmp": FormatSpec(
            extensions=[".bmp"], mime_types=["image/bmp"],
            reason="Large file sizes, limited web optimization",
        ),
    }


class FormatConfig(BaseModel):
    """Which formats count as web-displayable and how detection probes them."""

    supported: dict[str, FormatSpec] = Field(default_factory=_default_supported)
    rejected: dict[str, FormatSpec] = Field(default_factory=_default_rejected)
    http_timeout_seconds: float = Field(5.0, gt=0, description="Timeout for HEAD/range probes")
    sniff_content: bool = Field(False, description="Fall back to reading image header bytes")
    sniff_bytes: int = Field(1024, ge=16, description="Bytes fetched for content sniffing")

    def format_for_mime(self, mime_type: str) -> str | None:
        normalized = mime_type.lower().split(";")[0].strip()
        for table in (self.supported, self.rejected):
            for name, spec in table.items():
                if normalized in spec.mime_types:
                    return name
        return None

    def format_for_extension(self, extension: str) -> str | None:
        ext = extension.lower()
        for table in (self.supported, self.rejected):
            for name, spec in table.items():
                if ext in spec.extensions:
                    return name
        return None

    def is_supported(self, fmt: str) -> bool:
        spec = self.supported.get(fmt)
        return spec.enabled if spec else False

    def rejection_reason(self, fmt: str) -> str:
        spec = self.rejected.get(fmt)
        if spec and spec.reason:
            return spec.reason
        return "Format not supported for web display"

    def mime_for_format(self, fmt: str) -> str | None:
        spec = self.supported.get(fmt) or self.rejected.get(fmt)
        return spec.mime_types[0] if spec and spec.mime_types else None


class VerdictCacheConfig(BaseModel):
    """Configuration for the format verdict cache."""

    ttl_seconds: float = Field(600.0, gt=0, description="How long a verdict stays valid")
    max_size: int = Field(1000, ge=1, description="LRU capacity")


class WikimediaConfig(BaseModel):
    """Configuration for the Wikimedia Commons data source."""

    api_url: str = "https://commons.wikimedia.org/w/api.php"
    user_agent: str = Field(
        "geophoto/0.1 (https://github.com/geophoto/geophoto)",
        description="Wikimedia asks every client to identify itself",
    )
    results_per_location: int = Field(20, ge=1, le=500, description="gslimit")
    titles_per_request: int = Field(50, ge=1, le=50, description="imageinfo chunk size")
    timeout_seconds: float = Field(10.0, gt=0)
    requests_per_minute: float = Field(200.0, description="API rate limit (0=unlimited)")
    min_year: int = Field(1900, description="Oldest capture year accepted")
    require_year: bool = Field(True, description="Drop pages without a parseable capture year")
    require_coordinates: bool = Field(True, description="Drop pages without usable GPS data")


class MetricsConfig(BaseModel):
    """Configuration for validation metrics aggregation."""

    max_records: int = Field(1000, ge=1, description="Recent events kept for rate calculations")


class GeoPhotoConfig(BaseModel):
    """Top-level configuration for GeoPhoto."""

    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    formats: FormatConfig = Field(default_factory=FormatConfig)
    verdict_cache: VerdictCacheConfig = Field(default_factory=VerdictCacheConfig)
    wikimedia: WikimediaConfig = Field(default_factory=WikimediaConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> GeoPhotoConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    @classmethod
    def default(cls) -> GeoPhotoConfig:
        """Return configuration with all defaults."""
        return cls()
