"""
Web Recorder - CLI Entry Point.

Configuration Priority:
    1. CLI arguments (--port, --browser, etc.)
    2. Environment variables (WEB_RECORDER__SERVER__PORT, etc.)
    3. Config file (web-recorder.yaml)

Usage:
    web-recorder serve --port 8000
    web-recorder record example.com --browser firefox-playwright -o events.json
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from web_recorder import __version__
from web_recorder.config import Settings, load_config
from web_recorder.exceptions import WebRecorderError
from web_recorder.utils.logging import setup_logging

app = typer.Typer(
    name="web-recorder",
    help="Record user interactions in remote-controlled browsers",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)


def _load_settings(
    config_path: Optional[Path],
    host: Optional[str] = None,
    port: Optional[int] = None,
    base_path: Optional[str] = None,
    verbose: bool = False,
) -> Settings:
    """Load settings from file/env, then apply CLI overrides."""
    overrides: Dict[str, Any] = {}
    server: Dict[str, Any] = {}
    if host is not None:
        server["host"] = host
    if port is not None:
        server["port"] = port
    if base_path is not None:
        server["base_path"] = base_path
    if server:
        overrides["server"] = server
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}

    try:
        settings = load_config(config_path)
    except WebRecorderError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    if overrides:
        settings = settings.merge_with(overrides)

    setup_logging(
        settings.logging.level,
        log_file=settings.logging.file,
        json_format=settings.logging.json_format,
        console=console,
        file_format=settings.logging.format,
    )
    return settings


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind to (default: from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind to (default: from config)"),
    base_path: Optional[str] = typer.Option(None, "--base-path", help="Prefix for every route"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
):
    """
    Run the recorder server.

    Sessions are started through POST /api/sessions; the injected page
    script reports back to /hooks/{session}/...

    Examples:
        web-recorder serve                      # localhost:8000
        web-recorder serve --host 0.0.0.0       # reachable from other machines
    """
    from web_recorder.server import run_server

    settings = _load_settings(config, host, port, base_path, verbose=debug)

    console.print(Panel.fit(
        "[bold blue]● Web Recorder[/bold blue]\n"
        f"[dim]API:       http://{settings.server.host}:{settings.server.port}/docs[/dim]\n"
        f"[dim]Callbacks: {settings.server.callback_base_url}/hooks[/dim]",
        border_style="blue",
    ))

    try:
        run_server(settings, debug=debug)
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
    except Exception as e:
        console.print(f"[red]✗ Server error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def record(
    url: str = typer.Argument(..., help="Page to start recording on ('about:blank' for an empty page)"),
    browser: Optional[str] = typer.Option(None, "--browser", "-b", help="Browser kind, e.g. chrome-playwright, firefox, chromium-sidecar"),
    headless: bool = typer.Option(False, "--headless", help="Run the browser without a window"),
    output: Path = typer.Option(Path("recording.json"), "--output", "-o", help="Where to write the recorded events"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port for the callback server"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Open a browser, record until it is closed or Ctrl+C, then save the events.

    Examples:
        web-recorder record example.com
        web-recorder record https://shop.example.com -b firefox-playwright -o checkout.json
    """
    settings = _load_settings(config, port=port, verbose=verbose)

    try:
        count = asyncio.run(_record_async(settings, url, browser, headless, output))
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        return
    except WebRecorderError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Saved {count} events to {output}[/green]")


async def _record_async(
    settings: Settings,
    url: str,
    browser: Optional[str],
    headless: bool,
    output: Path,
) -> int:
    import uvicorn

    from web_recorder.recorder.lifecycle import build_recording_config
    from web_recorder.server import RecorderState, create_app

    state = RecorderState(settings)
    server = uvicorn.Server(uvicorn.Config(
        create_app(state=state),
        host=settings.server.host,
        port=settings.server.port,
        log_level="warning",
    ))
    serve_task = asyncio.create_task(server.serve())
    while not server.started:
        if serve_task.done():
            serve_task.result()
            raise WebRecorderError("Callback server exited during startup")
        await asyncio.sleep(0.05)

    queue = state.broadcaster.subscribe()
    session = None
    try:
        config = build_recording_config(settings, browser_kind=browser, headless=headless or None, base_url=url)
        session = await state.controller.start(config)
        console.print(Panel.fit(
            f"[bold red]● Recording[/bold red] {url}\n"
            f"[dim]Session {session.id} ({config.browser_kind.value})[/dim]\n"
            "[dim]Close the browser or press Ctrl+C to finish[/dim]",
            border_style="red",
        ))
        if session.degraded:
            console.print("[yellow]⚠ Recorder script could not be verified; retrying in the background[/yellow]")

        while True:
            get_message = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({get_message, serve_task}, return_when=asyncio.FIRST_COMPLETED)
            if get_message not in done:
                get_message.cancel()
                break
            message = get_message.result()
            if message.get("sessionId") != session.id:
                continue
            _print_notification(message)
            if message["type"] == "status" and message.get("status") in ("COMPLETED", "ERROR"):
                break
    finally:
        state.broadcaster.unsubscribe(queue)
        count = 0
        if session is not None:
            await state.controller.stop(session.id)
            events = state.gateway.session_events(session.id)
            output.write_text(json.dumps({"session": session.to_dict(), "events": events}, indent=2))
            count = len(events)
        server.should_exit = True
        await serve_task
    return count


def _print_notification(message: Dict[str, Any]) -> None:
    kind = message["type"]
    if kind == "event_recorded":
        event = message["event"]
        element = event.get("targetElement") or {}
        target = element.get("cssSelector") or element.get("tagName") or event.get("url", "")
        console.print(f"[cyan]#{message['eventCount']:<4}[/cyan] {event['type']:<12} [dim]{target}[/dim]")
    elif kind == "status":
        console.print(f"[yellow]◆ {message.get('previous')} → {message.get('status')}[/yellow]")
    elif kind == "connection":
        state = "connected" if message.get("connected") else "disconnected"
        reason = f" ({message['reason']})" if message.get("reason") else ""
        console.print(f"[dim]Browser {state}{reason}[/dim]")


@app.command("sidecar-health")
def sidecar_health(
    url: Optional[str] = typer.Option(None, "--url", help="Sidecar base URL (default: from config)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Check whether the sidecar automation service is reachable."""
    from web_recorder.drivers.sidecar_driver import SidecarProcess

    settings = _load_settings(config)
    sidecar_settings = settings.sidecar
    if url:
        sidecar_settings = sidecar_settings.model_copy(update={"url": url})

    healthy = asyncio.run(SidecarProcess(sidecar_settings).is_healthy())
    if healthy:
        console.print(f"[green]✓ Sidecar at {sidecar_settings.url} is healthy[/green]")
    else:
        console.print(f"[red]✗ Sidecar at {sidecar_settings.url} is not responding[/red]")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]Web Recorder[/bold] v{__version__}")


if __name__ == "__main__":
    app()
