"""cssshaker CLI entry point."""
from __future__ import annotations

import logging

import click

from cssshaker.config import DEFAULT_STYLES_LIMIT, ShakerConfig
from cssshaker.errors import ShakerError
from cssshaker.shaker import CssTreeShaker


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log every selector decision")
def cli(verbose: bool) -> None:
    """cssshaker: remove unused CSS from inline <style> elements."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("source", type=click.File("rb"), default="-")
@click.option("-o", "--output", type=click.File("w", encoding="utf-8"), default="-", help="Where to write the HTML")
@click.option("--limit", default=DEFAULT_STYLES_LIMIT, type=int, show_default=True, help="Styles size in bytes that triggers shaking")
@click.option("--force/--no-force", default=False, help="Shake even if the styles fit into the limit")
@click.option("--strict/--no-strict", default=False, help="Fail on malformed CSS instead of leaving it untouched")
@click.option("--stats", is_flag=True, help="Print a summary to stderr")
def shake(source, output, limit: int, force: bool, strict: bool, stats: bool) -> None:
    """Shake the styles of an HTML document."""
    config = ShakerConfig(styles_limit=limit, force=force, strict=strict)
    try:
        shaker = CssTreeShaker.from_config(source.read(), config)
        html = shaker.shake_it(force=config.force)
    except ShakerError as exc:
        raise click.ClickException(str(exc)) from exc

    output.write(html)
    if stats:
        s = shaker.stats
        click.echo(
            f"Shaken: {s.slots_shaken}, skipped: {s.slots_skipped}, "
            f"removed selectors: {s.selectors_removed}, removed blocks: {s.blocks_removed}, "
            f"bytes: {s.bytes_before} -> {s.bytes_after}",
            err=True,
        )


@cli.command()
@click.argument("source", type=click.File("rb"), default="-")
@click.option("--limit", default=DEFAULT_STYLES_LIMIT, type=int, show_default=True, help="Styles size in bytes that triggers shaking")
def check(source, limit: int) -> None:
    """Report the styles size and whether shaking would run."""
    try:
        shaker = CssTreeShaker(source.read(), limit)
    except ShakerError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Styles: {len(shaker.styles)}")
    click.echo(f"Size: {shaker.styles_size} bytes (limit {limit})")
    click.echo(f"Should shake: {'yes' if shaker.should_shake() else 'no'}")
