"""CLI main entry point

Usage:
    bundleos init
    bundleos install <zip_path> [--kind plugin|theme]
    bundleos scaffold <name> [--kind plugin|theme] [--target frontend|admin]
    bundleos list [--kind ...] [--active/--inactive] [--target ...]
    bundleos show <slug>
    bundleos activate <slug>
    bundleos deactivate <slug>
    bundleos uninstall <slug> [--yes]
    bundleos check
"""

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bundleos import __version__
from bundleos.core.bundles.exceptions import BundleError, ManifestInvalidError
from bundleos.core.bundles.models import BundleKind, BundleRecord, ThemeTarget, UploadedBundle
from bundleos.core.bundles.service import BundleServices, get_bundle_services
from bundleos.core.config import get_config
from bundleos.core.storage.paths import ensure_dir
from bundleos.store import get_migration_status, init_db

console = Console()

KIND_CHOICE = click.Choice([k.value for k in BundleKind])
TARGET_CHOICE = click.Choice([t.value for t in ThemeTarget])


def _services() -> BundleServices:
    return get_bundle_services(get_config())


def _fail(e: BundleError) -> None:
    console.print(f"[red]Error: {escape(str(e))}[/red]")
    if isinstance(e, ManifestInvalidError) and e.missing_fields:
        console.print(f"  Missing fields: {', '.join(e.missing_fields)}")
    raise click.Abort()


def _status(record: BundleRecord) -> str:
    return "[green]active[/green]" if record.is_active else "[dim]inactive[/dim]"


@click.group()
@click.version_option(version=__version__, prog_name="bundleos")
def cli():
    """BundleOS - plugin and theme bundle manager"""
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(levelname)s: %(message)s"
    )


@cli.command(name="init")
def init_cmd():
    """Create the registry database and module directories."""
    config = get_config()
    db_path = init_db(config.db_path)
    for path in (config.module_root, config.public_asset_root, config.scratch_root):
        ensure_dir(path)

    status = get_migration_status(db_path)
    console.print(f"[green]✓ Registry ready: {db_path}[/green]")
    console.print(f"  Schema version: v{status['current_version']:02d}")
    console.print(f"  Module root: {config.module_root}")
    console.print(f"  Public assets: {config.public_asset_root}")


@cli.command(name="install")
@click.argument("zip_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--kind", type=KIND_CHOICE, default=None,
              help="Reject bundles of the other kind")
def install_cmd(zip_path: Path, kind: Optional[str]):
    """Install a bundle from a zip archive."""
    services = _services()
    expected_kind = BundleKind(kind) if kind else None

    console.print(f"Installing bundle from: {zip_path}")
    try:
        record = services.installer.install(UploadedBundle.from_path(zip_path), expected_kind)
    except BundleError as e:
        _fail(e)

    console.print(f"[green]✓ Installed {record.kind.value} '{record.slug}' v{record.version}[/green]")
    console.print(f"  Module: {record.module_name}")
    console.print(f"  Status: {_status(record)}")


@cli.command(name="scaffold")
@click.argument("name")
@click.option("--kind", type=KIND_CHOICE, default=BundleKind.PLUGIN.value, show_default=True)
@click.option("--target", type=TARGET_CHOICE, default=None,
              help="Theme target (themes only, default: frontend)")
def scaffold_cmd(name: str, kind: str, target: Optional[str]):
    """Create an empty bundle skeleton and register it."""
    bundle_kind = BundleKind(kind)
    if target and bundle_kind != BundleKind.THEME:
        raise click.BadParameter("--target applies to themes only", param_hint="--target")

    services = _services()
    try:
        record = services.installer.scaffold(
            name, bundle_kind, ThemeTarget(target) if target else None
        )
    except BundleError as e:
        _fail(e)

    console.print(f"[green]✓ Scaffolded {record.kind.value} '{record.slug}'[/green]")
    console.print(f"  Module path: {services.lifecycle.module_path(record)}")


@cli.command(name="list")
@click.option("--kind", type=KIND_CHOICE, default=None)
@click.option("--active/--inactive", default=None, help="Filter by activation state")
@click.option("--target", type=TARGET_CHOICE, default=None)
def list_cmd(kind: Optional[str], active: Optional[bool], target: Optional[str]):
    """List installed bundles."""
    services = _services()
    try:
        records = services.lifecycle.list_bundles(
            kind=BundleKind(kind) if kind else None,
            active=active,
            theme_target=ThemeTarget(target) if target else None,
        )
    except BundleError as e:
        _fail(e)

    if not records:
        console.print("[yellow]No bundles installed.[/yellow]")
        return

    table = Table(title=f"Installed Bundles ({len(records)})", show_header=True, header_style="bold cyan")
    table.add_column("Slug", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Version", style="white")
    table.add_column("Kind", style="white")
    table.add_column("Target", style="white")
    table.add_column("Module", style="white")
    table.add_column("Status", style="white")

    for record in records:
        table.add_row(
            record.slug,
            record.name,
            record.version,
            record.kind.value,
            record.theme_target.value if record.theme_target else "-",
            record.module_name,
            _status(record),
        )

    console.print(table)


@cli.command(name="show")
@click.argument("slug")
def show_cmd(slug: str):
    """Show details of an installed bundle."""
    services = _services()
    try:
        record = services.lifecycle.get(slug)
    except BundleError as e:
        _fail(e)

    console.print(f"\n[bold]{record.name}[/bold] ({record.slug})\n")
    console.print(f"  Version: {record.version}")
    console.print(f"  Kind: {record.kind.value}")
    if record.theme_target:
        console.print(f"  Target: {record.theme_target.value}")
    console.print(f"  Module: {record.module_name}")
    console.print(f"  Status: {_status(record)}")
    if record.description:
        console.print(f"  Description: {record.description}")
    if record.author:
        console.print(f"  Author: {record.author}")
    if record.bundle_url:
        console.print(f"  URL: {record.bundle_url}")
    if record.dependencies:
        console.print(f"  Dependencies: {', '.join(record.dependencies)}")
    if record.customization_options:
        console.print("  Customization options:")
        console.print_json(data=record.customization_options)
    if record.created_at:
        console.print(f"  Installed: {record.created_at.isoformat()}")


@cli.command(name="activate")
@click.argument("slug")
def activate_cmd(slug: str):
    """Activate a bundle."""
    services = _services()
    try:
        record = services.lifecycle.activate(slug)
    except BundleError as e:
        _fail(e)

    console.print(f"[green]✓ Activated {record.kind.value} '{record.slug}'[/green]")


@cli.command(name="deactivate")
@click.argument("slug")
def deactivate_cmd(slug: str):
    """Deactivate a bundle."""
    services = _services()
    try:
        record = services.lifecycle.deactivate(slug)
    except BundleError as e:
        _fail(e)

    console.print(f"[green]✓ Deactivated {record.kind.value} '{record.slug}'[/green]")


@cli.command(name="uninstall")
@click.argument("slug")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
def uninstall_cmd(slug: str, yes: bool):
    """Uninstall a bundle and delete its files."""
    if not yes:
        click.confirm(f"Uninstall '{slug}' and delete its module directory?", abort=True)

    services = _services()
    try:
        services.lifecycle.uninstall(slug)
    except BundleError as e:
        _fail(e)

    console.print(f"[green]✓ Uninstalled '{slug}'[/green]")


@cli.command(name="check")
def check_cmd():
    """Compare registry records with module directories."""
    services = _services()
    try:
        report = services.check_consistency()
    except BundleError as e:
        _fail(e)

    if report.is_consistent:
        console.print("[green]✓ Registry and module root are consistent[/green]")
        return

    for name in report.orphan_directories:
        console.print(f"[yellow]Orphan module directory (no record): {name}[/yellow]")
    for slug in report.dangling_records:
        console.print(f"[yellow]Record without module directory: {slug}[/yellow]")
    raise click.exceptions.Exit(1)


if __name__ == "__main__":
    cli()
