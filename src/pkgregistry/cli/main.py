import typer
import asyncio
import logging
from pathlib import Path
from typing import Optional
from fsspec.implementations.local import LocalFileSystem
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .. import config
from ..domain.errors import RegistryError
from ..domain.identity import PackageIdentity
from ..manifest.loader import DefaultManifestLoader
from ..registry.manager import RegistryManager
from ..utils.hash import checksum_algorithm
from .registry_commands import app as registry_app

app = typer.Typer()
console = Console()

# add registry subcommand
app.add_typer(registry_app, name="registry", help="Manage configured registries")


def get_registry_manager() -> RegistryManager:
    configuration = config.load_configuration(config.CONFIG_FILE)
    return RegistryManager(configuration)


def run(operation):
    """run one manager coroutine, closing the manager's http client afterwards."""
    manager = get_registry_manager()

    async def runner():
        try:
            return await operation(manager)
        finally:
            await manager.aclose()

    try:
        return asyncio.run(runner())
    except RegistryError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


@app.callback()
def main_callback(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    """query and download packages from a package registry."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.command()
def versions(identity: str, show_all: bool = typer.Option(False, "--all", help="Include withdrawn releases")):
    """list the published versions of a package."""
    package = PackageIdentity(identity)

    if not show_all:
        found = run(lambda manager: manager.fetch_versions(package))
        if not found:
            console.print(f"[yellow]No versions of '{identity}' available.[/yellow]")
            return
        for version in found:
            console.print(version)
        return

    releases = run(lambda manager: manager.fetch_releases(package))
    table = Table(title=f"Releases of {identity}")
    table.add_column("Version", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for release in releases:
        if release.is_withdrawn:
            problem = release.problem
            table.add_row(release.version, f"[red]{problem.status} {problem.title or ''}[/red]", problem.detail or "")
        else:
            table.add_row(release.version, "[green]available[/green]", release.url or "")
    console.print(table)


@app.command()
def manifest(
    identity: str,
    version: str,
    swift_version: Optional[str] = typer.Option(None, "--swift-version", help="Request a language-version specific manifest"),
):
    """show the manifest of a package version."""
    package = PackageIdentity(identity)
    loader = DefaultManifestLoader()
    result = run(lambda manager: manager.fetch_manifest(version, package, loader, swift_version=swift_version))

    grid = Table.grid(expand=True)
    grid.add_column(style="bold cyan", justify="right")
    grid.add_column(style="white")

    grid.add_row("Name:", result.name)
    grid.add_row("Tools version:", result.tools_version)
    for product in result.products:
        kind = product.type.value
        if product.library_type:
            kind = f"{kind} ({product.library_type.value})"
        grid.add_row("Product:", f"{product.name} [dim]{kind} → {', '.join(product.targets)}[/dim]")
    for target in result.targets:
        grid.add_row("Target:", f"{target.name} [dim]{target.type.value}[/dim]")
    if result.swift_language_versions:
        grid.add_row("Swift versions:", ", ".join(result.swift_language_versions))

    console.print(Panel(grid, title=f"📦 {identity} {version}", border_style="cyan"))


@app.command()
def checksum(identity: str, version: str):
    """print the registry-published checksum of a source archive."""
    package = PackageIdentity(identity)
    console.print(run(lambda manager: manager.fetch_source_archive_checksum(version, package)))


@app.command()
def download(
    identity: str,
    version: str,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the archive"),
    expected_checksum: Optional[str] = typer.Option(None, "--checksum", help="Expected checksum; fetched from the registry if omitted"),
    algorithm: str = typer.Option("sha256", "--algorithm", help="Checksum algorithm"),
    extract: Optional[Path] = typer.Option(None, "--extract", help="Extract the verified archive into this directory"),
):
    """download and verify a source archive."""
    package = PackageIdentity(identity)
    try:
        hasher = checksum_algorithm(algorithm)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    name = package.name or identity
    target = (output or Path(f"{name}-{version}.zip")).resolve()
    fs = LocalFileSystem()

    with console.status(f"downloading {identity}@{version}"):
        if extract:
            written = run(lambda manager: manager.download_and_extract(
                version, package, fs, target.as_posix(), extract.resolve().as_posix(),
                expected_checksum=expected_checksum, checksum_algorithm=hasher,
            ))
        else:
            run(lambda manager: manager.download_source_archive(
                version, package, fs, target.as_posix(),
                expected_checksum=expected_checksum, checksum_algorithm=hasher,
            ))

    console.print(f"[green]✓[/green] Verified archive written to {target}")
    if extract:
        console.print(f"[green]✓[/green] Extracted {len(written)} files into {extract}")


@app.command()
def lookup(url: str):
    """find the registry identities published for a source URL."""
    identities = run(lambda manager: manager.lookup_identities(url))
    if not identities:
        console.print(f"[yellow]No package in the registry is published from {url}[/yellow]")
        return
    for identity in sorted(identities, key=lambda i: str(i).lower()):
        console.print(str(identity))


if __name__ == "__main__":
    app()
