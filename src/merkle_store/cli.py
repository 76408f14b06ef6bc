"""CLI for Merkle Store."""

import json
import shutil
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import MST_DIR, __version__
from .blob import compute_file_hash
from .builder import StoreSink, TreeBuilder
from .config import (
    StoreConfig,
    get_config_path,
    get_mst_dir,
    get_objects_dir,
    load_config,
    save_config,
)
from .hexcodec import HexError
from .manifest import ManifestStats, create_empty_manifest, load_manifest, save_manifest
from .store import ObjectStore, StoreError
from .tree import EntryKind, TreeError

console = Console()
error_console = Console(stderr=True)

# Errors reported to the user instead of a traceback
HANDLED_ERRORS = (OSError, HexError, TreeError, StoreError)


def get_project_root() -> Path:
    """Get the project root directory (current working directory)."""
    return Path.cwd()


def is_initialized(project_root: Path) -> bool:
    """Check if mst is initialized in the project."""
    return get_mst_dir(project_root).exists()


def require_initialized(project_root: Path) -> None:
    """Raise an error if mst is not initialized."""
    if not is_initialized(project_root):
        error_console.print(
            "[red]Error:[/red] Not initialized. Run [bold]mst init[/bold] first."
        )
        sys.exit(1)


def fail(error: Exception | str) -> None:
    """Report a library error and exit."""
    error_console.print(f"[red]Error:[/red] {escape(str(error))}", highlight=False)
    sys.exit(1)


def open_store(project_root: Path) -> tuple[StoreConfig, ObjectStore]:
    """Load config and open the project's object store."""
    try:
        config = load_config(project_root)
    except (json.JSONDecodeError, ValidationError) as e:
        fail(f"Invalid config {get_config_path(project_root)}: {e}")
    store = ObjectStore(get_objects_dir(project_root, config), chunk_size=config.chunk_size)
    return config, store


@click.group()
@click.version_option(version=__version__, prog_name="mst")
def main() -> None:
    """Merkle Store - content-addressed snapshots of directory trees."""
    pass


@main.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing configuration",
)
def init(force: bool) -> None:
    """Initialize mst in the current project."""
    project_root = get_project_root()
    mst_dir = get_mst_dir(project_root)

    if mst_dir.exists() and not force:
        error_console.print(
            f"[yellow]Warning:[/yellow] {MST_DIR}/ already exists. Use --force to reinitialize."
        )
        sys.exit(1)

    mst_dir.mkdir(parents=True, exist_ok=True)

    config = StoreConfig()
    save_config(config, project_root)
    get_objects_dir(project_root, config).mkdir(parents=True, exist_ok=True)

    manifest = create_empty_manifest()
    save_manifest(manifest, project_root)

    _update_gitignore(project_root)

    console.print(
        Panel(
            f"[green]Initialized Merkle Store[/green]\n\n"
            f"Store directory: [dim]{mst_dir}[/dim]\n\n"
            f"Next steps:\n"
            f"  1. Run [bold]mst write-tree[/bold] to snapshot the project\n"
            f"  2. Run [bold]mst ls-tree <oid>[/bold] to inspect it",
            title="mst init",
        )
    )


@main.command("write-tree")
@click.argument(
    "path",
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def write_tree_command(path: Path | None, verbose: bool) -> None:
    """Store a directory (default: project root) and print its tree oid."""
    project_root = get_project_root()
    require_initialized(project_root)

    config, store = open_store(project_root)
    source = path or project_root
    builder = TreeBuilder(
        store,
        StoreSink(store),
        exclude_patterns=config.exclude_patterns,
        exclude_paths=[store.root],
        verbose=verbose,
        console=console,
    )

    try:
        builder.build(source)
    except HANDLED_ERRORS as e:
        fail(e)

    stats = builder.stats
    manifest = load_manifest(project_root) or create_empty_manifest()
    manifest.root_oid = stats.root_oid
    manifest.source = str(source.resolve())
    manifest.stats = ManifestStats(
        trees=stats.trees_built,
        blobs=stats.blobs_seen,
        objects_written=store.stats.objects_written,
    )
    save_manifest(manifest, project_root)

    if verbose:
        table = Table(title="Snapshot Complete")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", justify="right")

        table.add_row("Trees built", str(stats.trees_built))
        table.add_row("Blobs seen", str(stats.blobs_seen))
        table.add_row("Entries skipped", str(stats.entries_skipped))
        table.add_row("Objects written", str(store.stats.objects_written))
        table.add_row("Objects already stored", str(store.stats.objects_skipped))

        console.print(table)

    click.echo(stats.root_oid)


@main.command("hash-object")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-w", "--write", is_flag=True, help="Write the blob into the store")
def hash_object(path: Path, write: bool) -> None:
    """Print the blob oid of a file."""
    project_root = get_project_root()

    try:
        if write:
            require_initialized(project_root)
            _, store = open_store(project_root)
            oid = store.hash_and_store_file(path)
        else:
            oid = compute_file_hash(path)
    except HANDLED_ERRORS as e:
        fail(e)

    click.echo(oid)


@main.command("cat-file")
@click.argument("oid")
def cat_file(oid: str) -> None:
    """Write the raw bytes of a stored object to stdout."""
    project_root = get_project_root()
    require_initialized(project_root)

    _, store = open_store(project_root)
    try:
        data = store.read_object(oid)
    except HANDLED_ERRORS as e:
        fail(e)

    stdout = sys.stdout.buffer
    stdout.write(data)
    stdout.flush()


@main.command("ls-tree")
@click.argument("oid")
@click.option("--name-only", is_flag=True, help="List only entry names")
def ls_tree(oid: str, name_only: bool) -> None:
    """List the entries of a stored tree."""
    project_root = get_project_root()
    require_initialized(project_root)

    _, store = open_store(project_root)
    try:
        tree = store.read_tree(oid)
    except HANDLED_ERRORS as e:
        fail(e)

    for entry in tree.entries:
        if name_only:
            click.echo(entry.name)
        else:
            kind = "blob" if entry.kind == EntryKind.BLOB else "tree"
            click.echo(f"{kind} {entry.oid}\t{entry.name}")


@main.command()
def fsck() -> None:
    """Verify every stored object against its address."""
    project_root = get_project_root()
    require_initialized(project_root)

    _, store = open_store(project_root)
    checked = 0
    corrupt: list[str] = []
    try:
        for oid in store.iter_objects():
            checked += 1
            if not store.verify_object(oid):
                corrupt.append(oid)
    except HANDLED_ERRORS as e:
        fail(e)

    for oid in corrupt:
        error_console.print(f"[red]corrupt:[/red] {oid}", highlight=False)

    if corrupt:
        error_console.print(f"[red]{len(corrupt)} of {checked} objects are corrupt.[/red]")
        sys.exit(1)

    console.print(f"[green]{checked} objects OK.[/green]")


@main.command()
def status() -> None:
    """Show store status and the last snapshot."""
    project_root = get_project_root()
    require_initialized(project_root)

    _, store = open_store(project_root)
    manifest = load_manifest(project_root)

    table = Table(title="Merkle Store Status")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Project root", str(project_root))
    table.add_row("Object store", str(store.root))
    table.add_row("Objects", str(store.count_objects()))

    if manifest and manifest.root_oid:
        table.add_row("Last root", manifest.root_oid)
        table.add_row("Source", manifest.source or "")
        table.add_row("Trees", str(manifest.stats.trees))
        table.add_row("Blobs", str(manifest.stats.blobs))
        table.add_row("Last updated", manifest.updated_at.isoformat())
    elif manifest:
        table.add_row("Snapshot", "[yellow]None yet - run 'mst write-tree'[/yellow]")
    else:
        table.add_row("Snapshot", "[red]No manifest found[/red]")

    console.print(table)


@main.command()
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
def clean(force: bool) -> None:
    """Remove the .merkle-store directory."""
    project_root = get_project_root()
    mst_dir = get_mst_dir(project_root)

    if not mst_dir.exists():
        console.print(f"[dim]Nothing to clean - {MST_DIR}/ does not exist.[/dim]")
        return

    if not force:
        if not click.confirm(f"Remove {mst_dir}?"):
            console.print("[dim]Cancelled.[/dim]")
            return

    shutil.rmtree(mst_dir)
    console.print(f"[green]Removed {MST_DIR}/[/green]")


def _update_gitignore(project_root: Path) -> None:
    """Add .merkle-store/ to .gitignore if not already present."""
    gitignore_path = project_root / ".gitignore"
    entry = f"{MST_DIR}/"

    if gitignore_path.exists():
        content = gitignore_path.read_text()
        if entry in content or MST_DIR in content:
            return  # Already present
        with open(gitignore_path, "a") as f:
            f.write(f"\n# Merkle Store\n{entry}\n")
    else:
        gitignore_path.write_text(f"# Merkle Store\n{entry}\n")


if __name__ == "__main__":
    main()
