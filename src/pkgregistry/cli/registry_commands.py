import typer
from rich.console import Console
from rich.table import Table
from typing import Optional

from .. import config
from ..config import DEFAULT_REGISTRY_KEY

app = typer.Typer()
console = Console()


@app.command("set")
def set_registry(
    url: str,
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Only use this registry for the given scope"),
):
    """
    set the default registry, or the registry for one scope.

    scope-specific registries take precedence over the default one.
    """
    try:
        config.set_registry(url, scope=scope, path=config.CONFIG_FILE)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    target = f"scope '{scope}'" if scope else "default registry"
    console.print(f"[green]✓[/green] {target} set to {url}")


@app.command("show")
def show_registries():
    """list configured registries."""
    configuration = config.load_configuration(config.CONFIG_FILE)

    if not configuration.registries:
        console.print("[yellow]No registries configured.[/yellow]")
        console.print("\nSet one with: [cyan]pkgregistry registry set <url>[/cyan]")
        return

    table = Table(title="Registries")
    table.add_column("Scope", style="cyan")
    table.add_column("URL", style="white")

    default = configuration.default_registry
    if default:
        table.add_row(DEFAULT_REGISTRY_KEY, default.url)
    for scope, registry in sorted(configuration.scoped_registries.items()):
        table.add_row(scope, registry.url)

    console.print(table)
    if configuration.security.allow_insecure_http:
        console.print("[yellow]insecure (http) registries are allowed[/yellow]")
