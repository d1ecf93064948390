"""CLI command for one-off searches against the live registry."""

from __future__ import annotations

import asyncio
import json

import click
import structlog
from dotenv import load_dotenv

from trialfinder.config import load_settings
from trialfinder.errors import RegistryUnavailable
from trialfinder.runtime import create_client, create_engine
from trialfinder.schema import SearchCriteria, SearchResult, SortMode

logger = structlog.get_logger()


async def run_search(settings, criteria: SearchCriteria) -> SearchResult:
    client = create_client(settings)
    try:
        engine = create_engine(settings, client=client)
        return await engine.search(criteria)
    finally:
        await client.aclose()


def _format_row(i: int, trial) -> str:
    dist = (
        f"{trial.nearest_distance_miles:6.1f} mi"
        if trial.nearest_distance_miles is not None
        else "     — mi"
    )
    phase = ", ".join(trial.phase) or "N/A"
    updated = trial.recency_date or "—"
    return f"{i:>3}. {trial.id}  {dist}  {phase:<18} {updated:<10}  {trial.title[:70]}"


@click.command("search")
@click.option("--condition", default=None, help="Condition free text, e.g. 'diabetes'.")
@click.option("--zip", "zip_code", default=None, help="5-digit US ZIP code used as origin.")
@click.option("--radius", type=float, default=None, help="Radius in miles around --zip.")
@click.option("--age", type=float, default=None, help="Patient age in years.")
@click.option("--gender", default=None, help="Male or Female.")
@click.option("--phase", default=None, help="e.g. 'Phase 2' or PHASE2.")
@click.option("--status", "statuses", multiple=True, help="Recruitment status (repeatable).")
@click.option(
    "--sort",
    "sort_mode",
    type=click.Choice([m.value for m in SortMode]),
    default=SortMode.RECENT.value,
    show_default=True,
)
@click.option("--page-token", default=None, help="Continuation token from a previous page.")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON response.")
@click.pass_context
def search_cmd(
    ctx, condition, zip_code, radius, age, gender, phase, statuses, sort_mode, page_token,
    config_path, as_json,
):
    """Search trials and print them ranked."""
    load_dotenv()
    settings = load_settings(config_path)
    criteria = SearchCriteria(
        condition=condition,
        location_zip=zip_code,
        radius_miles=radius,
        min_age=age,
        gender=gender,
        phase=phase,
        statuses=list(statuses) or None,
        sort_mode=SortMode(sort_mode),
        page_token=page_token,
    )

    try:
        result = asyncio.run(run_search(settings, criteria))
    except RegistryUnavailable as exc:
        click.echo(f"ERROR: Could not reach the clinical trial registry ({exc})", err=True)
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        return

    if not result.trials:
        click.echo("No trials found.")
        return
    for i, trial in enumerate(result.trials, start=1):
        click.echo(_format_row(i, trial))
    footer = f"\n{len(result.trials)} shown"
    if result.total_count is not None:
        footer += f" of {result.total_count} upstream matches"
    if result.next_page_token:
        footer += f" | next page: --page-token {result.next_page_token}"
    click.echo(footer)
