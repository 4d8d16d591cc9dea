"""opencode-bridge command-line interface."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, replace

import click

from .config import BridgeConfig, SessionFallbackPolicy


@dataclass(slots=True)
class ServeResult:
    url: str
    config: BridgeConfig


def run_server(
    config: BridgeConfig,
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    log_level: str = "info",
) -> ServeResult:
    """Start uvicorn with the bridge app and block until it exits."""

    try:
        import uvicorn
    except ModuleNotFoundError as exc:  # pragma: no cover - optional extra
        raise click.ClickException("uvicorn is required to serve the bridge. Install opencode-bridge[server].") from exc

    from .http import create_bridge_app
    from .service import BridgeService

    app = create_bridge_app(BridgeService(config))
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level.lower()))
    server.run()
    return ServeResult(url=f"http://{host}:{port}", config=config)


@click.group()
@click.version_option(package_name="opencode-bridge")
def app() -> None:
    """opencode-bridge - serve OpenCode sessions as OpenAI chat completions."""


@app.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8080, show_default=True, type=int, help="Port to bind.")
@click.option(
    "--opencode-url",
    default=None,
    help="OpenCode server URL. Defaults to OPENCODE_URL or http://127.0.0.1:4096.",
)
@click.option(
    "--session-fallback",
    type=click.Choice([policy.value for policy in SessionFallbackPolicy]),
    default=None,
    help="What to do when OpenCode cannot create a session.",
)
@click.option("--chunk-size", type=int, default=None, help="Characters per streamed content frame.")
@click.option("--poll-interval", type=float, default=None, help="Seconds between completion polls.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    show_default=True,
)
def serve(
    host: str,
    port: int,
    opencode_url: str | None,
    session_fallback: str | None,
    chunk_size: int | None,
    poll_interval: float | None,
    log_level: str,
) -> None:
    """Run the OpenAI-compatible HTTP bridge."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        config = BridgeConfig.from_env()
        overrides: dict[str, object] = {}
        if opencode_url:
            overrides["base_url"] = opencode_url
        if session_fallback:
            overrides["session_fallback"] = SessionFallbackPolicy(session_fallback)
        if chunk_size is not None:
            overrides["chunk_size"] = chunk_size
        if poll_interval is not None:
            overrides["poll_interval_s"] = poll_interval
        if overrides:
            config = replace(config, **overrides)
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo(f"Bridging {config.base_url} on http://{host}:{port}/v1")
    run_server(config, host=host, port=port, log_level=log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
