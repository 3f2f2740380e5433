# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for suite",
#   "sections": [
#     {
#       "id": "isolated-env",
#       "name": "isolated_env",
#       "anchor": "function-isolated-env",
#       "kind": "function"
#     },
#     {
#       "id": "settings",
#       "name": "settings",
#       "anchor": "function-settings",
#       "kind": "function"
#     },
#     {
#       "id": "build-pipeline",
#       "name": "build_pipeline",
#       "anchor": "function-build-pipeline",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Shared fixtures for the FullText suite: an isolated environment with no
credentials, settings whose polling waits are zero, a temporary extraction
store, and a factory for acquisition pipelines over in-memory fakes and an
``httpx.MockTransport``.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from PapersKit.FullText.acquisition import AcquisitionPipeline  # noqa: E402
from PapersKit.FullText.config.models import PapersSettings  # noqa: E402
from PapersKit.FullText.store import LocalExtractionStore  # noqa: E402

CREDENTIAL_ENV = (
    "ZOTERO_USER_ID",
    "ZOTERO_API_KEY",
    "ZOTERO_DATA_DIR",
    "OPENALEX_API_KEY",
    "OPENALEX_MAILTO",
    "DATALAB_API_KEY",
    "PAPERS_EXTRACT_CACHE_DIR",
    "PAPERSKIT_CONFIG",
)


def _not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, request=request)


# --- Fixtures ---


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip credentials and ``PAPERSKIT_`` overrides from the environment."""
    import os

    for name in CREDENTIAL_ENV:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("PAPERSKIT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> PapersSettings:
    return PapersSettings.model_validate(
        {
            "cache_root": str(tmp_path / "cache"),
            "zotero": {"data_dir": str(tmp_path / "zotero")},
            "http": {"max_attempts": 1},
            "polling": {"initial_delay_s": 0, "interval_s": 0},
        }
    )


@pytest.fixture
def store(settings: PapersSettings) -> LocalExtractionStore:
    return LocalExtractionStore(settings.cache_root)


@pytest.fixture
def build_pipeline(
    store: LocalExtractionStore, settings: PapersSettings
) -> Callable[..., AcquisitionPipeline]:
    """Factory: ``build_pipeline(metadata, library=..., extractor=..., handler=...)``."""

    def factory(
        metadata,
        *,
        library=None,
        extractor=None,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> AcquisitionPipeline:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler or _not_found))
        return AcquisitionPipeline(
            store=store,
            metadata=metadata,
            http_client=client,
            library=library,
            extractor=extractor,
            settings=settings,
        )

    return factory
