"""
FullText Configuration Package

Public API for loading and validating FullText configuration.

Example:
    from PapersKit.FullText.config import load_config

    settings = load_config(
        path="paperskit.yaml",
        cli_overrides={"polling": {"retries": 20}},
    )
    store = LocalExtractionStore(default_cache_root(settings.cache_root))
"""

from .loader import load_config
from .models import (
    DEFAULT_PDF_DOMAINS,
    AcquisitionConfig,
    DatalabConfig,
    HttpConfig,
    OpenAlexConfig,
    PapersSettings,
    PollingConfig,
    ZoteroConfig,
)

__all__ = [
    "DEFAULT_PDF_DOMAINS",
    "AcquisitionConfig",
    "DatalabConfig",
    "HttpConfig",
    "OpenAlexConfig",
    "PapersSettings",
    "PollingConfig",
    "ZoteroConfig",
    "load_config",
]
