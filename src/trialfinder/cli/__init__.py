"""CLI entry point for trialfinder."""

import sys

import click
import structlog

from trialfinder.cli.search import search_cmd
from trialfinder.cli.serve import check_cmd, serve_cmd


def _stderr_logger(*args):
    # Looked up per logger so a swapped sys.stderr is honored
    return structlog.PrintLogger(sys.stderr)


@click.group()
def main():
    """Search recruiting clinical trials on ClinicalTrials.gov by condition and distance."""
    # stdout carries command output (e.g. `search --json`); logs go to stderr
    structlog.configure(logger_factory=_stderr_logger)


main.add_command(search_cmd)
main.add_command(serve_cmd)
main.add_command(check_cmd)
