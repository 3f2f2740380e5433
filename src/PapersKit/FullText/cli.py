# === NAVMAP v1 ===
# {
#   "module": "PapersKit.FullText.cli",
#   "purpose": "Typer CLI: work text acquisition and extraction backup sync.",
#   "sections": [
#     {
#       "id": "terminalenvironment",
#       "name": "TerminalEnvironment",
#       "anchor": "class-terminalenvironment",
#       "kind": "class"
#     },
#     {
#       "id": "root-callback",
#       "name": "root_callback",
#       "anchor": "function-root-callback",
#       "kind": "function"
#     },
#     {
#       "id": "text",
#       "name": "text",
#       "anchor": "function-text",
#       "kind": "function"
#     },
#     {
#       "id": "extract-list",
#       "name": "extract_list",
#       "anchor": "function-extract-list",
#       "kind": "function"
#     },
#     {
#       "id": "extract-upload",
#       "name": "extract_upload",
#       "anchor": "function-extract-upload",
#       "kind": "function"
#     },
#     {
#       "id": "extract-download",
#       "name": "extract_download",
#       "anchor": "function-extract-download",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Command line interface for full-text acquisition.

Commands:
- ``paperskit text WORK_ID``: print the full text of a work, asking the user
  to add it to Zotero when no source has a PDF
- ``paperskit extract list``: local extractions and their backup status
- ``paperskit extract upload``: back up local extractions to Zotero
- ``paperskit extract download``: restore backups missing locally

Global options (``--config``, ``--log-level``) go before the subcommand::

    paperskit --config paperskit.yaml text W2741809807 --mode accurate
    paperskit --log-level DEBUG extract upload --dry-run

Results go to stdout; progress, prompts and errors go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated, Awaitable, Callable, Optional, TypeVar

import click
import typer

from .acquisition import acquire_with_fallback
from .config import load_config
from .config.models import PapersSettings
from .errors import NoPdfFound, PapersError, PollingTimedOut, no_pdf_message, timed_out_message
from .fallback.types import ElicitationAction
from .formatting import format_listing, format_sync_report, format_work_text
from .logging_utils import setup_logging
from .runtime import Services, open_services
from .sync import SyncReport
from .types import ProcessingMode, WorkTextResult

__all__ = ["TerminalEnvironment", "app", "main"]

T = TypeVar("T")

app = typer.Typer(
    name="paperskit",
    no_args_is_help=True,
    help="Full text of scholarly works from Zotero, open-access URLs and OpenAlex.",
)

extract_app = typer.Typer(no_args_is_help=True)
app.add_typer(extract_app, name="extract", help="List, back up and restore local extractions")


class TerminalEnvironment:
    """Fallback environment for an interactive terminal.

    There is no model to sample, so only the elicitation step runs: the user
    confirms on stdin and the DOI landing page opens in their browser.
    """

    def __init__(self, *, interactive: bool, open_browser: bool = True) -> None:
        self.interactive = interactive
        self.open_browser = open_browser

    @property
    def supports_sampling(self) -> bool:
        return False

    @property
    def supports_elicitation(self) -> bool:
        return self.interactive

    async def sample(self, prompt: str) -> Optional[str]:
        return None

    async def elicit_url(self, message: str, url: str) -> ElicitationAction:
        typer.echo(message, err=True)
        try:
            confirmed = typer.confirm(
                f"Open {url} to save this paper to Zotero?", default=True, err=True
            )
        except click.Abort:
            return "cancel"
        if not confirmed:
            return "decline"
        if self.open_browser:
            typer.launch(url)
        typer.echo("Waiting for paper to appear in Zotero...", err=True)
        return "accept"

    async def report_progress(
        self, progress: float, total: float, message: Optional[str] = None
    ) -> None:
        suffix = f" {message}" if message else ""
        typer.echo(f"[{int(progress)}/{int(total)}]{suffix}", err=True)


def _settings(ctx: typer.Context) -> PapersSettings:
    settings = ctx.obj
    if not isinstance(settings, PapersSettings):
        typer.echo("✗ Configuration not initialized", err=True)
        raise typer.Exit(code=1)
    return settings


def _run(settings: PapersSettings, action: Callable[[Services], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with open_services(settings) as services:
            return await action(services)

    return asyncio.run(runner())


def _print_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


# ============================================================================
# Root callback
# ============================================================================


@app.callback()
def root_callback(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config", "-c", envvar="PAPERSKIT_CONFIG", help="Config file (YAML or JSON)"
        ),
    ] = None,
    log_level: Annotated[
        str, typer.Option("--log-level", help="Logging level (DEBUG|INFO|WARNING|ERROR)")
    ] = "WARNING",
    log_file: Annotated[
        Optional[Path], typer.Option("--log-file", help="Also write JSON-lines logs here")
    ] = None,
) -> None:
    """Acquire and cache the full text of scholarly works."""
    setup_logging(level=log_level, log_file=log_file)
    try:
        ctx.obj = load_config(path=config)
    except Exception as e:
        typer.echo(f"✗ Configuration Error: {e}", err=True)
        raise typer.Exit(code=1)


# ============================================================================
# text
# ============================================================================


@app.command()
def text(
    ctx: typer.Context,
    work_id: Annotated[str, typer.Argument(help="OpenAlex ID, DOI or doi: reference")],
    mode: Annotated[
        Optional[ProcessingMode],
        typer.Option("--mode", help="Use DataLab extraction at this quality tier"),
    ] = None,
    no_prompt: Annotated[
        bool, typer.Option("--no-prompt", help="Never ask to add the paper to Zotero")
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the result as JSON")] = False,
) -> None:
    """Print the full text of a work."""
    settings = _settings(ctx)
    environment = TerminalEnvironment(interactive=not no_prompt and sys.stdin.isatty())

    async def action(services: Services) -> WorkTextResult:
        return await acquire_with_fallback(
            services.pipeline,
            work_id,
            mode=mode,
            coordinator=services.coordinator,
            environment=environment,
        )

    try:
        result = _run(settings, action)
    except PollingTimedOut as e:
        typer.echo(f"✗ {timed_out_message(e)}", err=True)
        raise typer.Exit(code=1)
    except NoPdfFound as e:
        typer.echo(
            f"✗ {no_pdf_message(e, library_configured=settings.zotero.configured)}", err=True
        )
        raise typer.Exit(code=1)
    except PapersError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        _print_json(result.to_dict())
    else:
        typer.echo(format_work_text(result), nl=False)


# ============================================================================
# extract
# ============================================================================


def _run_sync(settings: PapersSettings, action: Callable[..., Awaitable[T]]) -> T:
    if not settings.zotero.configured:
        typer.echo(
            "✗ Zotero is not configured: set ZOTERO_USER_ID and ZOTERO_API_KEY", err=True
        )
        raise typer.Exit(code=1)

    async def with_executor(services: Services) -> T:
        executor = services.sync_executor()
        if executor is None:
            raise PapersError("Zotero client unavailable")
        return await action(executor)

    try:
        return _run(settings, with_executor)
    except PapersError as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(code=1)


def _finish(report: SyncReport, as_json: bool) -> None:
    if as_json:
        _print_json(
            {
                "operation": report.operation,
                "dry_run": report.dry_run,
                "outcomes": [
                    {"key": o.key, "status": o.status, "detail": o.detail}
                    for o in report.outcomes
                ],
            }
        )
    else:
        typer.echo(format_sync_report(report))
    if report.failed:
        raise typer.Exit(code=1)


@extract_app.command("list")
def extract_list(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Print entries as JSON")] = False,
) -> None:
    """List local extractions and their Zotero backup status."""
    entries = _run_sync(_settings(ctx), lambda executor: executor.list())
    if as_json:
        _print_json([entry.to_dict() for entry in entries])
    else:
        typer.echo(format_listing(entries))


@extract_app.command("upload")
def extract_upload(
    ctx: typer.Context,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show what would be uploaded")
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON")] = False,
) -> None:
    """Back up local extractions to their Zotero items."""
    report = _run_sync(_settings(ctx), lambda executor: executor.upload(dry_run=dry_run))
    _finish(report, as_json)


@extract_app.command("download")
def extract_download(
    ctx: typer.Context,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show what would be downloaded")
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON")] = False,
) -> None:
    """Restore Zotero backups that are missing locally."""
    report = _run_sync(_settings(ctx), lambda executor: executor.download(dry_run=dry_run))
    _finish(report, as_json)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
