import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import settings
from .models import UpdateSummary
from .services.image_service import ImageService
from .services.instance_service import InstanceService
from .services.modrinth_service import ModrinthError
from .services.packwiz_service import PackwizService
from .services.server_service import ServerService, ServiceError
from .services.servers_dat import (
    DecodingError,
    EncodingError,
    read_servers_dat,
    write_servers_dat,
)

app = typer.Typer(
    add_completion=False,
    help="Build, push and update the modded Minecraft servers in this repository.",
)
console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except (ServiceError, ModrinthError, EncodingError) as exc:
        err_console.print(f"[red][ERROR][/red] {exc.message}")
        raise typer.Exit(code=1) from exc


def _require_target(server: Optional[str], all_servers: bool) -> None:
    if server and all_servers:
        err_console.print("[red][ERROR][/red] Pass a server name or --all, not both")
        raise typer.Exit(code=1)
    if not server and not all_servers:
        err_console.print("[red][ERROR][/red] No server specified")
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    _configure_logging(verbose)


def encode_servers(
    output: str = typer.Argument(..., help="Path of the servers.dat file to write"),
    pairs: Optional[List[str]] = typer.Argument(
        None,
        help="Alternating server names and addresses "
        "(put -- before the pairs when a name starts with -)",
    ),
) -> None:
    """Write a multiplayer server list (servers.dat) from NAME ADDRESS pairs.

    Example: encode-servers servers.dat -- "-Survival-" mc.example.com:25565
    """
    values = pairs or []
    if len(values) % 2:
        raise typer.BadParameter(
            f"expected NAME ADDRESS pairs, got {len(values)} values", param_hint="PAIRS"
        )
    entries = list(zip(values[0::2], values[1::2]))
    with _handle_errors():
        size = write_servers_dat(output, entries)
    console.print(f"[green]✓[/green] Wrote {len(entries)} server(s) to {output} ({size} bytes)")


app.command("encode-servers")(encode_servers)

encode_app = typer.Typer(add_completion=False)
encode_app.command()(encode_servers)


@app.command("read-servers")
def read_servers(path: str = typer.Argument(..., help="servers.dat file to read")) -> None:
    """Print the multiplayer server list stored in a servers.dat file."""
    try:
        entries = read_servers_dat(path)
    except (OSError, DecodingError) as exc:
        err_console.print(f"[red][ERROR][/red] Failed to read {path}: {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title=path)
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("Address")
    for index, entry in enumerate(entries, start=1):
        table.add_row(str(index), entry.name, entry.address)
    console.print(table)


@app.command("list-servers")
def list_servers() -> None:
    """Show the servers defined in the catalog."""
    with _handle_errors():
        summaries = ServerService().summaries()
    table = Table()
    table.add_column("Server")
    table.add_column("Name")
    table.add_column("Minecraft")
    table.add_column("Loader")
    table.add_column("Pack URL")
    for summary in summaries:
        table.add_row(
            summary.key,
            summary.name,
            summary.minecraft,
            f"{summary.loader} {summary.loader_version}",
            summary.packwiz_url,
        )
    console.print(table)


@app.command("build")
def build(
    server: Optional[str] = typer.Argument(None, help="Server to build, e.g. dj-server"),
    all_servers: bool = typer.Option(False, "--all", help="Build every server in servers/"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Image tag (default: $TAG or latest)"),
    push: bool = typer.Option(False, "--push", help="Push the image after building"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Build without cache"),
) -> None:
    """Build Docker images for the servers."""
    _require_target(server, all_servers)
    service = ImageService()
    no_cache_override = True if no_cache else None
    with _handle_errors():
        if all_servers:
            results = service.build_all(tag, no_cache_override, push)
        else:
            results = [service.build(server, tag, no_cache_override, push)]
    for result in results:
        tags = ", ".join(f"{result.image}:{value}" for value in result.tags)
        verb = "Built and pushed" if result.pushed else "Built"
        console.print(f"[green][SUCCESS][/green] {verb} {tags}")


@app.command("push")
def push(
    server: Optional[str] = typer.Argument(None, help="Server to push, e.g. dj-server"),
    all_servers: bool = typer.Option(False, "--all", help="Push every server in servers/"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Image tag (default: $TAG or latest)"),
) -> None:
    """Push built images to the registry."""
    _require_target(server, all_servers)
    service = ImageService()
    with _handle_errors():
        if all_servers:
            results, failures = service.push_all(tag)
        else:
            results, failures = [service.push(server, tag)], {}
    for result in results:
        tags = ", ".join(f"{result.image}:{value}" for value in result.tags)
        console.print(f"[green][SUCCESS][/green] Pushed {tags}")
    for name, message in failures.items():
        err_console.print(f"[yellow][WARN][/yellow] {name}: {message}")
    console.print("Push complete")


def _print_summary(summary: UpdateSummary) -> None:
    table = Table(title=f"Update summary for {summary.server} ({summary.minecraft})")
    table.add_column("Mod")
    table.add_column("Status")
    table.add_column("Old")
    table.add_column("New")
    styles = {"updated": "green", "failed": "red", "outdated": "yellow"}
    for result in summary.results:
        style = styles.get(result.status, "")
        status = f"[{style}]{result.status}[/{style}]" if style else result.status
        table.add_row(result.slug, status, result.old_filename or "", result.new_filename or "")
    console.print(table)

    if summary.dry_run:
        console.print("[yellow]Dry run - no changes made[/yellow]")
        return
    console.print(
        f"Total mods: {len(summary.results)}  "
        f"[green]Successful: {len(summary.results) - summary.failed}[/green]  "
        f"[red]Failed: {summary.failed}[/red]"
    )
    if summary.outdated:
        console.print(f"[yellow]Mods not yet updated to {summary.minecraft}:[/yellow]")
        for result in summary.outdated:
            console.print(f"  [yellow]⚠[/yellow]  {result.slug}: {result.new_filename}")


@app.command("update-mods")
def update_mods(
    server: Optional[str] = typer.Argument(None, help="Server to update, e.g. dj-server"),
    all_servers: bool = typer.Option(False, "--all", help="Update every server in servers/"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without changing anything"),
    delay: Optional[float] = typer.Option(
        None, "--delay", min=0, help="Seconds between mod updates (default: $DELAY_SECONDS or 2)"
    ),
) -> None:
    """Update packwiz mods to the newest versions for the pack's Minecraft release."""
    _require_target(server, all_servers)
    service = PackwizService()
    with _handle_errors():
        service.check_dependencies()
        if all_servers:
            summaries, failures = service.update_all(dry_run=dry_run, delay=delay)
        else:
            summaries, failures = [service.update_server(server, dry_run=dry_run, delay=delay)], {}

    for summary in summaries:
        _print_summary(summary)
    for name, message in failures.items():
        err_console.print(f"[red][ERROR][/red] {name}: {message}")
    if failures or any(summary.failed for summary in summaries):
        err_console.print("[yellow]Some mods failed to update.[/yellow]")
        raise typer.Exit(code=1)


@app.command("setup-instances")
def setup_instances(
    servers: Optional[List[str]] = typer.Argument(None, help="Servers to set up (default: all)"),
    instances_path: Optional[str] = typer.Option(
        None, "--instances-path", help="Prism Launcher instances directory"
    ),
) -> None:
    """Create Prism Launcher instances that sync mods from the packwiz packs."""
    service = InstanceService(instances_path=instances_path)
    with _handle_errors():
        results = service.setup_instances(servers)
    for result in results:
        console.print(f"[green]✓[/green] Created {result.server} instance in {result.instance_dir}")
    console.print("Done! Restart Prism Launcher to see the new instances.")


def encode_servers_main() -> None:
    _configure_logging(False)
    encode_app()
