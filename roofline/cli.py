"""roofline CLI: roof topology reconstruction from the command line.

Usage::

    roofline analyze building.json
    roofline analyze building.json --ridge-bearing 90 --roof-style gable --json
    roofline validate building.json
    roofline skeleton "POLYGON((0 0, 50 0, 50 40, 0 40, 0 0))"
    roofline --version
"""

from __future__ import annotations

import logging
import sys

import click

from roofline.core.exceptions import RooflineError


@click.group(invoke_without_command=True)
@click.version_option(package_name="roofline")
@click.option("-v", "--verbose", is_flag=True, help="Log pipeline progress to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """roofline: roof line topology from building footprints."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--ridge-bearing", type=float, help="Manual ridge direction as a compass bearing.")
@click.option(
    "--roof-style",
    type=click.Choice(["hip", "gable"], case_sensitive=False),
    help="Override the roof style from the input document.",
)
@click.option("--audit-db", type=click.Path(dir_okay=False), help="Record corrections in this SQLite file.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
def analyze(
    file_path: str,
    ridge_bearing: float | None,
    roof_style: str | None,
    audit_db: str | None,
    as_json: bool,
) -> None:
    """Run the full roof topology pipeline over a JSON input document."""
    from roofline.api import analyze_file

    if not as_json:
        click.echo(f"🏠 Analysing {file_path}...")

    try:
        result = analyze_file(
            file_path,
            ridge_bearing_deg=ridge_bearing,
            roof_style=roof_style.lower() if roof_style else None,
            audit_db=audit_db,
        )
    except RooflineError as exc:
        click.secho(f"❌ Error: {exc}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(result.to_json())
    else:
        click.echo()
        click.echo(result.summary())
        if audit_db:
            click.echo(f"\n💾 Corrections recorded in {audit_db}")

    if result.is_blocked:
        sys.exit(2)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
def validate(file_path: str) -> None:
    """Resolve and validate the footprint only (no topology)."""
    from roofline.api import resolve_footprint
    from roofline.core.schema import load_input

    click.echo(f"🔍 Validating {file_path}...")
    try:
        document = load_input(file_path)
        report = resolve_footprint(
            document.to_candidates(),
            reference=document.to_reference(),
            location=document.location.to_coordinate() if document.location else None,
        )
    except RooflineError as exc:
        click.secho(f"❌ Error: {exc}", fg="red", err=True)
        sys.exit(1)

    click.echo()
    click.echo(report.summary())


@cli.command()
@click.argument("polygon_wkt")
def skeleton(polygon_wkt: str) -> None:
    """Print the typed straight-skeleton edges of a planar WKT polygon."""
    from roofline.api import skeleton_lines

    try:
        lines = skeleton_lines(polygon_wkt)
    except RooflineError as exc:
        click.secho(f"❌ Error: {exc}", fg="red", err=True)
        sys.exit(1)

    for kind, wkt in lines:
        click.echo(f"{kind}\t{wkt}")


if __name__ == "__main__":
    cli()
