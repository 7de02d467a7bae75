"""ciupload CLI."""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ciupload.backend import HttpBackendClient
from ciupload.config import CIUploadConfig, get_config_template, get_token, load_config
from ciupload.context import (
    DEFAULT_CONTEXT_PATH,
    SESSION_TYPES,
    context_from_env,
    read_context,
    write_context,
)
from ciupload.coordinator import SessionCoordinator, wait_for_session
from ciupload.errors import CIUploadError, ConfigError
from ciupload.types import ArtifactKind, RunMetadata, RunResult, Session, SessionStatus, SessionType
from ciupload.uploader import HttpSlotUploader

app = typer.Typer(help="ciupload - Ship CI run artifacts for review")
console = Console()

CIUPLOAD_DIR = ".ciupload"
CONFIG_FILE = "ciupload.yaml"


def setup_logging(verbose: bool = False):
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_config() -> CIUploadConfig:
    """Load ciupload.yaml, falling back to defaults when it is absent."""
    config_path = Path(CONFIG_FILE)
    if not config_path.exists():
        return CIUploadConfig()
    try:
        return load_config(config_path)
    except (ValueError, ConfigError) as e:
        console.print(f"[red]Error:[/red] Invalid {CONFIG_FILE}: {e}")
        raise typer.Exit(1)


def make_backend(config: CIUploadConfig, token: str) -> HttpBackendClient:
    return HttpBackendClient(
        config.backend.base_url,
        lambda: token,
        timeout=config.backend.timeout_seconds,
    )


def make_uploader(config: CIUploadConfig) -> HttpSlotUploader:
    return HttpSlotUploader(timeout=config.upload.timeout_seconds)


def _require_token(config: CIUploadConfig) -> str:
    try:
        return get_token(config.backend)
    except CIUploadError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def init():
    """Initialize ciupload in the current directory."""
    config_file = Path(CONFIG_FILE)

    if config_file.exists():
        console.print(f"[yellow]Warning:[/yellow] {CONFIG_FILE} already exists.")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit(0)

    Path(CIUPLOAD_DIR).mkdir(exist_ok=True)
    config_file.write_text(get_config_template())

    console.print("[green]Initialized ciupload.[/green]")
    console.print(f"  Config: {CONFIG_FILE}")
    console.print(f"\nSet the token variable named in {CONFIG_FILE} before uploading.")


@app.command("create-context")
def create_context(
    provider: str = typer.Option(..., "--provider", "-p", help="CI provider: github or gitlab"),
    output: Path = typer.Option(Path(DEFAULT_CONTEXT_PATH), "--output", "-o", help="Context file"),
):
    """Create the context file used when uploading from CI."""
    try:
        context = context_from_env(provider)
    except CIUploadError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if write_context(context, output):
        console.print(f"Context file written to {output}")
    else:
        console.print(f"Context file already exists at {output}")


@app.command()
def upload(
    from_file: Path | None = typer.Option(None, "--from", help="Spec before the change"),
    to_file: Path | None = typer.Option(None, "--to", help="Spec after the change"),
    rules: Path | None = typer.Option(None, "--rules", help="Check results file"),
    context: Path | None = typer.Option(None, "--context", help="CI context file"),
    session_type: SessionType | None = typer.Option(None, "--type", help="Session type"),
    provider: str | None = typer.Option(None, "--provider", help="CI provider the context came from"),
    wait: bool = typer.Option(False, "--wait", help="Wait until the session is ready"),
    wait_timeout: int = typer.Option(300, "--wait-timeout", help="Seconds to wait with --wait"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """Upload a CI run and print the review URL."""
    setup_logging(verbose)
    config = get_config()

    declared = config.declared_artifacts()
    overrides = {
        ArtifactKind.FROM_FILE: from_file,
        ArtifactKind.TO_FILE: to_file,
        ArtifactKind.CHECK_RESULTS: rules,
        ArtifactKind.CI_EVENT: context,
    }
    declared.update({kind: path for kind, path in overrides.items() if path is not None})
    if not declared:
        console.print("[red]Error:[/red] No artifacts to upload. Pass --from, --to, --rules or --context.")
        raise typer.Exit(1)

    try:
        metadata = build_metadata(declared, session_type, provider)
    except CIUploadError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    token = _require_token(config)

    try:
        result = asyncio.run(_upload(config, token, declared, metadata, wait, wait_timeout))
    except CIUploadError as e:
        console.print(f"[red]Upload failed:[/red] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow] The session was left incomplete.")
        raise typer.Exit(1)

    console.print(f"[green]Uploaded {len(result.uploaded)} of {len(declared)} artifacts.[/green]")
    show_result(result)
    if result.status is SessionStatus.FAILED:
        raise typer.Exit(1)


def build_metadata(
    declared: dict[ArtifactKind, Path],
    session_type: SessionType | None,
    provider: str | None,
) -> RunMetadata:
    """Assemble the session payload from the declared artifacts."""
    provider_metadata = {}
    context_path = declared.get(ArtifactKind.CI_EVENT)
    if context_path is not None and context_path.exists():
        provider_metadata = read_context(context_path)

    if session_type is None:
        if provider is not None:
            session_type = SESSION_TYPES.get(provider, SessionType.MANUAL)
        else:
            # Context files record the provider that wrote them.
            recorded = provider_metadata.get("provider")
            if not isinstance(recorded, str):
                recorded = ""
            session_type = SESSION_TYPES.get(recorded, SessionType.MANUAL)

    return RunMetadata(
        type=session_type,
        run_args={kind.value: str(path) for kind, path in declared.items()},
        provider_metadata=provider_metadata,
    )


async def _upload(
    config: CIUploadConfig,
    token: str,
    declared: dict[ArtifactKind, Path],
    metadata: RunMetadata,
    wait: bool,
    wait_timeout: int,
) -> RunResult:
    async with make_backend(config, token) as backend, make_uploader(config) as uploader:
        coordinator = SessionCoordinator(backend, uploader, config.upload)
        result = await coordinator.upload_ci_run(declared, metadata)

        if wait and result.status.is_pending:
            session = await wait_for_session(
                backend,
                result.session_id,
                timeout=wait_timeout,
                poll_interval=config.backend.poll_seconds,
            )
            result = result.model_copy(
                update={"status": session.status, "web_url": session.web_url}
            )
        return result


@app.command()
def status(
    session_id: str = typer.Argument(..., help="Session ID"),
    wait: bool = typer.Option(False, "--wait", "-w", help="Wait until the session is ready"),
    wait_timeout: int = typer.Option(300, "--wait-timeout", help="Seconds to wait with --wait"),
):
    """Show the status of an uploaded session."""
    config = get_config()
    token = _require_token(config)

    async def fetch() -> Session:
        async with make_backend(config, token) as backend:
            if wait:
                return await wait_for_session(
                    backend,
                    session_id,
                    timeout=wait_timeout,
                    poll_interval=config.backend.poll_seconds,
                )
            return await backend.get_session(session_id)

    try:
        session = asyncio.run(fetch())
    except CIUploadError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table()
    table.add_column("Session")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Files")
    table.add_row(session.id, session.type.value, session.status.value, str(len(session.files)))
    console.print(table)
    if session.web_url:
        console.print(f"[bold]Review:[/bold] {session.web_url}")


def show_result(result: RunResult) -> None:
    console.print(f"[bold]Session:[/bold] {result.session_id}")
    console.print(f"[bold]Status:[/bold] {result.status.value}")
    if result.web_url:
        console.print(f"[bold]Review:[/bold] {result.web_url}")
    else:
        console.print("Review page not available yet. Use 'ciupload status --wait' to follow it.")


if __name__ == "__main__":
    app()
