"""
Pydantic v2 Configuration Models for FullText

Provides strict, typed configuration for the FullText subsystems:
- Zotero library credentials and local data directory
- OpenAlex metadata and content API access
- DataLab Marker extraction service
- HTTP client settings (timeouts, user agent, retry policy)
- Interactive fallback polling budget
- Acquisition policy (direct-URL domain allow-list)
- Top-level PapersSettings as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PDF_DOMAINS = [
    "arxiv.org",
    "europepmc.org",
    "biorxiv.org",
    "medrxiv.org",
    "ncbi.nlm.nih.gov",
    "peerj.com",
    "mdpi.com",
    "frontiersin.org",
    "plos.org",
]


class ZoteroConfig(BaseModel):
    """Zotero Web API credentials and local data directory."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_id: Optional[str] = Field(default=None, description="Numeric Zotero user ID")
    api_key: Optional[str] = Field(default=None, description="Zotero Web API key")
    base_url: str = Field(default="https://api.zotero.org", description="Web API root")
    data_dir: Optional[Path] = Field(
        default=None, description="Local Zotero data directory (default ~/Zotero)"
    )

    @field_validator("user_id", "api_key", mode="before")
    @classmethod
    def coerce_str(cls, v: object) -> Optional[str]:
        if v is None or v == "":
            return None
        return str(v)

    @property
    def configured(self) -> bool:
        return bool(self.user_id and self.api_key)

    def resolved_data_dir(self) -> Path:
        return Path(self.data_dir) if self.data_dir else Path.home() / "Zotero"


class OpenAlexConfig(BaseModel):
    """OpenAlex metadata and content API access."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    api_key: Optional[str] = Field(default=None, description="Content API key")
    mailto: Optional[str] = Field(default=None, description="Polite pool contact email")
    content_base_url: str = Field(
        default="https://content.openalex.org", description="Content API root"
    )


class DatalabConfig(BaseModel):
    """DataLab Marker API settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    api_key: Optional[str] = Field(default=None, description="DataLab API key")
    base_url: str = Field(default="https://www.datalab.to", description="API root")
    poll_interval_s: float = Field(default=2.0, description="Seconds between status checks")
    max_polls: int = Field(default=300, description="Status checks before giving up")

    @field_validator("poll_interval_s")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("poll_interval_s must be >= 0")
        return v

    @field_validator("max_polls")
    @classmethod
    def validate_max_polls(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_polls must be >= 1")
        return v


class HttpConfig(BaseModel):
    """HTTP client settings shared by every collaborator binding."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(default="paperskit/0.1", description="User-Agent header")
    timeout_connect_s: float = Field(default=10.0, description="Connect timeout")
    timeout_read_s: float = Field(default=60.0, description="Read timeout")
    retry_statuses: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    max_attempts: int = Field(default=4, description="Maximum attempts per request")
    max_retry_after_s: float = Field(default=60.0, description="Cap on Retry-After waits")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v


class PollingConfig(BaseModel):
    """Budget for polling the library after the user was asked to add a work."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    initial_delay_s: float = Field(default=5.0, description="Wait before the first check")
    interval_s: float = Field(default=2.0, description="Wait between checks")
    retries: int = Field(default=55, description="Number of library checks")

    @field_validator("initial_delay_s", "interval_s")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delay values must be >= 0")
        return v

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retries must be >= 1")
        return v

    @property
    def total(self) -> int:
        return self.retries + 1


class AcquisitionConfig(BaseModel):
    """Acquisition policy."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    pdf_domains: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PDF_DOMAINS),
        description="Domains trusted for direct PDF downloads",
    )

    @field_validator("pdf_domains")
    @classmethod
    def normalize_domains(cls, v: List[str]) -> List[str]:
        return [d.strip().lower() for d in v if d and d.strip()]


class PapersSettings(BaseModel):
    """Top-level configuration for FullText acquisition and sync."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    cache_root: Optional[Path] = Field(default=None, description="Local extraction cache root")
    zotero: ZoteroConfig = Field(default_factory=ZoteroConfig)
    openalex: OpenAlexConfig = Field(default_factory=OpenAlexConfig)
    datalab: DatalabConfig = Field(default_factory=DatalabConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)

    def config_hash(self) -> str:
        """Deterministic SHA256 of the normalized configuration with secrets removed."""
        import hashlib
        import json

        data = self.model_dump(mode="json")
        for section in ("zotero", "openalex", "datalab"):
            data[section].pop("api_key", None)
        normalized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
