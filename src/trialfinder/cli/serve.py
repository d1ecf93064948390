"""CLI commands for running the HTTP API and checking connectivity."""

from __future__ import annotations

import asyncio

import click
import uvicorn
from dotenv import load_dotenv

from trialfinder.config import load_settings
from trialfinder.runtime import check_ctgov_health, create_client


@click.command("serve")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option("--host", default=None, help="Overrides server.host.")
@click.option("--port", type=int, default=None, help="Overrides server.port.")
def serve_cmd(config_path, host, port):
    """Run the search API with uvicorn."""
    load_dotenv()
    from trialfinder.api import build_app

    settings = load_settings(config_path)
    app = build_app(settings)
    uvicorn.run(app, host=host or settings.server.host, port=port or settings.server.port)


@click.command("check")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.pass_context
def check_cmd(ctx, config_path):
    """Check that ClinicalTrials.gov is reachable."""
    load_dotenv()
    settings = load_settings(config_path)

    async def _run():
        client = create_client(settings)
        try:
            return await check_ctgov_health(client)
        finally:
            await client.aclose()

    result = asyncio.run(_run())
    mark = "OK" if result.ok else "FAIL"
    click.echo(f"[{mark}] {result.name}: {result.detail} ({result.latency_ms:.0f} ms)")
    if not result.ok:
        ctx.exit(1)
