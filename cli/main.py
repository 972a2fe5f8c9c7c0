#!/usr/bin/env python3
"""
Brainpipe CLI.

Usage:
    brainpipe run
    brainpipe health
    brainpipe stats
    brainpipe logs -n 20
    brainpipe reset-state
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

# Add brainpipe to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from brainpipe import __version__
from brainpipe.config import config


@click.group()
@click.version_option(version=__version__)
def cli():
    """Brainpipe - brain dump notes to Notion tasks."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================================
# Sync Commands
# ============================================================================

async def _run_pipeline(check_health: bool):
    from brainpipe.ingest.pipeline import SyncPipeline
    from brainpipe.ingest.task_extractor import TaskExtractor
    from brainpipe.state import StateStore
    from brainpipe.sync.notion import NotionClient

    state = StateStore(config.STATE_PATH)

    async with TaskExtractor() as extractor, NotionClient() as notion:
        pipeline = SyncPipeline(config, state, extractor, notion)
        return await pipeline.run(check_health=check_health)


@cli.command()
@click.option("--skip-health", is_flag=True, help="Skip pre-flight health checks")
def run(skip_health: bool):
    """Extract tasks from modified notes and sync them to Notion."""
    summary = asyncio.run(_run_pipeline(check_health=not skip_health))

    if not summary.success:
        click.echo(click.style(f"✗ Sync failed: {summary.error}", fg="red"))
        for issue in summary.health_issues:
            click.echo(f"  - {issue}")
        sys.exit(1)

    click.echo(f"\nNotes scanned:   {summary.files_scanned:>8}")
    click.echo(f"Notes modified:  {summary.files_modified:>8}")
    click.echo(f"Chunks:          {summary.chunks:>8}")
    click.echo(f"Tasks extracted: {summary.extracted:>8}")
    click.echo(f"Already synced:  {summary.skipped:>8}")
    click.echo(f"Elapsed:         {summary.elapsed_seconds:>7.1f}s\n")

    if summary.has_failures:
        click.echo(click.style(
            f"⚠ Synced {summary.synced} tasks, {summary.failed} failed, "
            f"{summary.extraction_failures} chunks not extracted",
            fg="yellow",
        ))
    elif summary.synced:
        click.echo(click.style(f"✓ Synced {summary.synced} tasks to Notion", fg="green"))
    else:
        click.echo(click.style("✓ No new tasks found", fg="green"))


async def _check_services():
    from brainpipe.ingest.task_extractor import TaskExtractor
    from brainpipe.sync.notion import NotionClient

    async with TaskExtractor() as extractor, NotionClient() as notion:
        openai_status = await extractor.health_check()
        notion_status = await notion.health_check()
        info = await notion.get_database_info() if notion_status.healthy else None

    return openai_status, notion_status, info


@cli.command()
def health():
    """Check configuration, inbox access and API connectivity."""
    from brainpipe.ingest import reader

    errors = config.validate()
    if errors:
        click.echo(click.style("✗ Configuration", fg="red"))
        for error in errors:
            click.echo(f"  - {error}")
        sys.exit(1)

    checks = [("File system", reader.health_check(config.INBOX_DIR))]
    openai_status, notion_status, info = asyncio.run(_check_services())
    checks.append(("OpenAI", openai_status))
    checks.append(("Notion", notion_status))

    for name, status in checks:
        if status.healthy:
            click.echo(click.style(f"✓ {name}: {status.message}", fg="green"))
        else:
            click.echo(click.style(f"✗ {name}: {status.message}", fg="red"))

    if info:
        click.echo(f"\nDatabase: {info.title}")
        for name, kind in sorted(info.properties.items()):
            click.echo(f"  {name:<20} {kind}")

    if not all(status.healthy for _, status in checks):
        sys.exit(1)


# ============================================================================
# State & Admin Commands
# ============================================================================

@cli.command()
def stats():
    """Show ledger statistics."""
    from brainpipe.state import StateStore

    state = StateStore(config.STATE_PATH)

    click.echo("\nBrainpipe Statistics")
    click.echo("=" * 40)
    click.echo(f"Ledger:            {state.state_path}")
    click.echo(f"Last run:          {state.get_last_run() or 'never'}")
    click.echo(f"Processed tasks:   {state.processed_count:>15,}")
    click.echo(f"Tracked notes:     {state.watermark_count:>15,}")


@cli.command()
@click.option("-n", "--limit", default=50, help="Number of events")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def logs(limit: int, output_json: bool):
    """Show recent run events."""
    from brainpipe.telemetry import get_recorder

    events = get_recorder().read_recent(limit)

    if output_json:
        click.echo(json.dumps(events, indent=2))
        return

    if not events:
        click.echo("No events recorded")
        return

    colors = {"ERROR": "red", "WARNING": "yellow"}
    for event in events:
        level = event.get("level", "INFO")
        line = f"{event.get('timestamp', '')} {level:<7} {event.get('event', '')}"
        if event.get("data"):
            line += f" {json.dumps(event['data'], default=str)}"
        click.echo(click.style(line, fg=colors.get(level)))


@cli.command("reset-state")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def reset_state(yes: bool):
    """Forget processed tasks and note watermarks."""
    from brainpipe.state import StateStore

    if not yes:
        click.confirm(
            "This will re-extract every note on the next run. Continue?", abort=True
        )

    state = StateStore(config.STATE_PATH)
    state.reset()
    click.echo(click.style(f"✓ Ledger reset: {state.state_path}", fg="green"))


# ============================================================================
# Main Entry Point
# ============================================================================

def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
