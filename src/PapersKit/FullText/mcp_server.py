"""MCP server exposing work full-text acquisition over stdio.

The ``work_text`` tool runs the acquisition pipeline and, when no source
has a PDF, the interactive fallback using whatever the connected client
supports: sampling to ask its model for a PDF URL, elicitation to ask the
user to add the paper to Zotero, and progress notifications while polling.

Services (HTTP client, store, pipeline) live for the whole server session
and are built in the FastMCP lifespan.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.shared.exceptions import McpError
from mcp.types import (
    ClientCapabilities,
    ElicitationCapability,
    SamplingCapability,
    SamplingMessage,
    TextContent,
)
from pydantic import BaseModel, Field

from .acquisition import acquire_with_fallback
from .config import load_config
from .config.models import PapersSettings
from .errors import NoPdfFound, PapersError, PollingTimedOut, no_pdf_message, timed_out_message
from .fallback.types import ElicitationAction, EnvironmentUnavailable
from .formatting import format_work_text
from .logging_utils import setup_logging
from .runtime import Services, open_services
from .types import ProcessingMode

LOGGER = logging.getLogger(__name__)

__all__ = ["McpEnvironment", "build_server", "main", "parse_mode"]

SAMPLING_MAX_TOKENS = 300


class SavedToZotero(BaseModel):
    """Form shown to the user while they add a paper to their library."""

    saved: bool = Field(default=True, description="I saved the paper to my Zotero library")


class McpEnvironment:
    """Fallback environment backed by the MCP request context."""

    def __init__(self, ctx: Context) -> None:
        self.ctx = ctx

    def _client_supports(self, capability: ClientCapabilities) -> bool:
        try:
            return bool(self.ctx.session.check_client_capability(capability))
        except (AttributeError, ValueError):
            return False

    @property
    def supports_sampling(self) -> bool:
        return self._client_supports(ClientCapabilities(sampling=SamplingCapability()))

    @property
    def supports_elicitation(self) -> bool:
        return self._client_supports(ClientCapabilities(elicitation=ElicitationCapability()))

    async def sample(self, prompt: str) -> Optional[str]:
        try:
            reply = await self.ctx.session.create_message(
                messages=[
                    SamplingMessage(role="user", content=TextContent(type="text", text=prompt))
                ],
                max_tokens=SAMPLING_MAX_TOKENS,
            )
        except McpError as exc:
            raise EnvironmentUnavailable(f"sampling failed: {exc}") from exc
        content = reply.content
        if isinstance(content, TextContent):
            return content.text
        return None

    async def elicit_url(self, message: str, url: str) -> ElicitationAction:
        try:
            answer = await self.ctx.elicit(message=message, schema=SavedToZotero)
        except McpError as exc:
            raise EnvironmentUnavailable(f"elicitation failed: {exc}") from exc
        if answer.action == "accept":
            return "accept"
        return "cancel" if answer.action == "cancel" else "decline"

    async def report_progress(
        self, progress: float, total: float, message: Optional[str] = None
    ) -> None:
        await self.ctx.report_progress(progress, total, message)


def parse_mode(advanced_mode: Optional[str]) -> Optional[ProcessingMode]:
    if advanced_mode is None or not advanced_mode.strip():
        return None
    try:
        return ProcessingMode(advanced_mode.strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in ProcessingMode)
        raise ToolError(f"advanced_mode must be one of: {choices}") from None


def build_server(settings: PapersSettings) -> FastMCP:
    """FastMCP server named ``papers`` with the ``work_text`` tool."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[Services]:
        async with open_services(settings) as services:
            LOGGER.info(f"papers MCP server ready (cache: {services.store.cache_root})")
            yield services

    server = FastMCP("papers", lifespan=lifespan)

    @server.tool()
    async def work_text(
        work_id: str, ctx: Context, advanced_mode: Optional[str] = None
    ) -> str:
        """Full text of a scholarly work.

        Args:
            work_id: OpenAlex work ID (W...), DOI, or doi: reference.
            advanced_mode: fast, balanced or accurate to extract with DataLab
                instead of the built-in PDF text extractor.

        Looks in the local Zotero storage, the Zotero Web API, trusted
        open-access URLs and the OpenAlex content API, in that order. When
        none has the PDF, may ask you to add the paper to Zotero.
        """
        mode = parse_mode(advanced_mode)
        services: Services = ctx.request_context.lifespan_context
        try:
            result = await acquire_with_fallback(
                services.pipeline,
                work_id,
                mode=mode,
                coordinator=services.coordinator,
                environment=McpEnvironment(ctx),
            )
        except PollingTimedOut as exc:
            raise ToolError(timed_out_message(exc)) from exc
        except NoPdfFound as exc:
            raise ToolError(
                no_pdf_message(exc, library_configured=services.pipeline.library_configured)
            ) from exc
        except PapersError as exc:
            raise ToolError(str(exc)) from exc
        return format_work_text(result)

    return server


def main() -> None:
    setup_logging(level="INFO")
    build_server(load_config()).run(transport="stdio")


if __name__ == "__main__":
    main()
