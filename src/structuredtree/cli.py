"""CLI entry point for structuredtree.

Commands:
    structuredtree init      Create missing vault root folders
    structuredtree tree      Print every vault's note hierarchy
    structuredtree lookup    Fuzzy-find notes across vaults
    structuredtree resolve   Resolve a link as written in a given file
    structuredtree new       Create a note at a dotted path
    structuredtree rename    Rename a note and its descendants
    structuredtree move      Move a note file into another vault
    structuredtree gen-id    Add an id property to a note
    structuredtree export    Export the hierarchy as nested folders
    structuredtree graph     Build the note graph
    structuredtree watch     Keep the trees in sync with the store
"""

from __future__ import annotations

import asyncio
import locale
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.tree import Tree

from structuredtree import __version__

if TYPE_CHECKING:
    from structuredtree.config import Settings
    from structuredtree.engine.note import Note
    from structuredtree.engine.vault import StructuredVault
    from structuredtree.engine.workspace import StructuredWorkspace
    from structuredtree.store import LocalFileStore, StoredFile

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _setup_collation() -> None:
    """Sort titles by the user's locale rather than the C default."""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error:
        logging.getLogger(__name__).debug("Locale unavailable, keeping C collation")


def _warn_invalid_root(vault: StructuredVault) -> None:
    console.print(
        f"[yellow]![/yellow] Vault [bold]{vault.name}[/bold]: root folder"
        f" '{vault.config.path or '/'}' does not exist. Run `structuredtree init`."
    )


def _open_workspace(
    settings: Settings, *, warn: bool = True
) -> tuple[StructuredWorkspace, LocalFileStore]:
    """Build the workspace over the configured store, trees kept in sync synchronously."""
    from structuredtree.engine import StructuredWorkspace
    from structuredtree.store import FrontmatterMetadataProvider, LocalFileStore
    from structuredtree.sync import TreeSynchronizer

    if not settings.store_root.is_dir():
        console.print(f"[red]✗[/red] Store root {settings.store_root} does not exist.")
        sys.exit(1)

    store = LocalFileStore(settings.store_root)
    metadata = FrontmatterMetadataProvider(store, settings.tree.note_extension)
    workspace = StructuredWorkspace(
        settings, store, metadata, on_invalid_root=_warn_invalid_root if warn else None
    )
    workspace.change_vault(settings.vaults)
    store.subscribe(TreeSynchronizer(workspace).apply)
    return workspace, store


def _require_file(store: LocalFileStore, path: str) -> StoredFile:
    file = store.get_file(path)
    if file is None:
        console.print(f"[red]✗[/red] No such file in the store: {path}")
        sys.exit(1)
    return file


def _require_vault(workspace: StructuredWorkspace, file: StoredFile) -> StructuredVault:
    vault = workspace.find_vault_of_file(file)
    if vault is None:
        console.print(f"[red]✗[/red] {file.path} is not inside any vault.")
        sys.exit(1)
    return vault


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """structuredtree: dot-delimited note hierarchies over Markdown folders."""
    _setup_logging(verbose)
    _setup_collation()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the store root and every missing vault root folder."""
    from structuredtree.config import load_settings

    settings = load_settings(ctx.obj.get("config_path"))
    settings.store_root.mkdir(parents=True, exist_ok=True)

    workspace, _ = _open_workspace(settings, warn=False)
    for vault in workspace.vault_list:
        if vault.invalid_root:
            vault.create_root_folder()
            vault.init()
            console.print(f"  created {vault.config.path or '/'} for vault {vault.name}")

    console.print(f"[green]✓[/green] structuredtree initialized at {settings.store_root}")
    console.print(f"  vaults: {len(workspace.vault_list)}")


def _add_branch(branch: Tree, note: Note) -> None:
    for child in note.children:
        label = escape(child.title)
        if child.file is None:
            label = f"[dim]{label}[/dim]"
        _add_branch(branch.add(label), child)


@cli.command()
@click.pass_context
def tree(ctx: click.Context) -> None:
    """Print every vault's note hierarchy."""
    from structuredtree.config import load_settings

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, _ = _open_workspace(settings)

    for vault in workspace.vault_list:
        if not vault.is_initialized:
            continue
        label = f"[bold]{escape(vault.name)}[/bold]"
        if vault.config.is_secret:
            label += " [magenta](secret)[/magenta]"
        root = Tree(label)
        _add_branch(root, vault.tree.root)
        console.print(root)


@cli.command()
@click.argument("query")
@click.option("--active", "active_path", default=None, help="Store path of the active file")
@click.pass_context
def lookup(ctx: click.Context, query: str, active_path: str | None) -> None:
    """Fuzzy-find notes across vaults."""
    from structuredtree.config import load_settings
    from structuredtree.lookup import CreateNew, LookupIndex, highlight_matches

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, store = _open_workspace(settings)
    active = _require_file(store, active_path) if active_path else None

    index = LookupIndex(workspace, settings)
    for result in index.search(query, active_file=active):
        if isinstance(result, CreateNew):
            console.print(f"[green]+[/green] Create new: {escape(result.query)}")
            continue
        title = highlight_matches(result.note.title, result.matches, ["title"])
        path = highlight_matches(result.path, result.matches, ["path"])
        line = f"  {title or escape(result.note.title)}  [dim]{path or escape(result.path)}[/dim]"
        if result.excluded:
            line += " [yellow](excluded)[/yellow]"
        if len(workspace.vault_list) > 1:
            line += f" [cyan]{escape(result.vault.name)}[/cyan]"
        console.print(line)


@cli.command()
@click.argument("source")
@click.argument("link")
@click.option("--show", is_flag=True, help="Print the referenced section")
@click.pass_context
def resolve(ctx: click.Context, source: str, link: str, show: bool) -> None:
    """Resolve LINK as written in the file at SOURCE."""
    from structuredtree.config import load_settings
    from structuredtree.engine.ref import FileRef, extract_section

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, store = _open_workspace(settings)

    target = workspace.resolve_ref(source, link)
    if target is None:
        console.print(f"[red]✗[/red] {source} is not inside any vault.")
        sys.exit(1)

    if isinstance(target, FileRef):
        console.print(f"[green]✓[/green] file: {target.file.path}")
        return

    note = target.note
    state = "found" if note is not None and note.file is not None else "unresolved"
    console.print(f"[bold]vault:[/bold] {target.vault_name}")
    console.print(f"[bold]path:[/bold]  {target.path}")
    console.print(f"[bold]note:[/bold]  {state}")
    if note is not None and note.file is not None:
        console.print(f"[bold]file:[/bold]  {note.file.path}")

    if not show or note is None or note.file is None:
        return
    content = store.read_content(note.file)
    if target.subpath is not None:
        headings = workspace.metadata.get_headings(note.file)
        section = extract_section(content, target.subpath, headings)
        if section is None:
            console.print("[yellow]Section not found.[/yellow]")
            return
        content = section
    console.print(content, markup=False, highlight=False)


@cli.command()
@click.argument("path")
@click.option("--vault", "vault_name", default=None, help="Vault name (defaults to the first)")
@click.pass_context
def new(ctx: click.Context, path: str, vault_name: str | None) -> None:
    """Create a note at the dotted PATH."""
    from structuredtree.config import load_settings

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, _ = _open_workspace(settings)

    vault = (
        workspace.find_vault_by_name(vault_name)
        if vault_name
        else next(iter(workspace.vault_list), None)
    )
    if vault is None or not vault.is_initialized:
        console.print(f"[red]✗[/red] Vault not available: {vault_name or '(none configured)'}")
        sys.exit(1)

    try:
        file = vault.create_note(path)
    except FileExistsError:
        console.print(f"[red]✗[/red] Note already exists: {path}")
        sys.exit(1)
    vault.generate_frontmatter(file)
    console.print(f"[green]✓[/green] Created {file.path}")


@cli.command()
@click.argument("file_path")
@click.argument("new_name")
@click.pass_context
def rename(ctx: click.Context, file_path: str, new_name: str) -> None:
    """Rename the note at FILE_PATH to NEW_NAME, descendants included."""
    from structuredtree.config import load_settings
    from structuredtree.engine import NoteRenamer

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, store = _open_workspace(settings)
    file = _require_file(store, file_path)
    vault = _require_vault(workspace, file)

    try:
        renamed = NoteRenamer(vault).rename_note(file, new_name)
    except FileExistsError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Renamed to {renamed.path}")


@cli.command()
@click.argument("file_path")
@click.argument("vault_name")
@click.pass_context
def move(ctx: click.Context, file_path: str, vault_name: str) -> None:
    """Move the note at FILE_PATH into vault VAULT_NAME."""
    from structuredtree.config import load_settings

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, store = _open_workspace(settings)
    file = _require_file(store, file_path)

    target = workspace.find_vault_by_name(vault_name)
    if target is None or not target.is_initialized:
        console.print(f"[red]✗[/red] Vault not available: {vault_name}")
        sys.exit(1)

    try:
        moved = workspace.move_note(file, target)
    except FileExistsError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Moved to {moved.path}")


@cli.command("gen-id")
@click.argument("file_path")
@click.pass_context
def gen_id(ctx: click.Context, file_path: str) -> None:
    """Add an id property to the note at FILE_PATH."""
    from structuredtree.config import load_settings

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, store = _open_workspace(settings)
    file = _require_file(store, file_path)
    vault = _require_vault(workspace, file)

    new_id = vault.generate_id(file)
    if new_id is None:
        console.print("[yellow]Note already has an id.[/yellow]")
    else:
        console.print(f"[green]✓[/green] {vault.properties.id_key}: {new_id}")


@cli.command()
@click.argument("dest", type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def export(ctx: click.Context, dest: Path) -> None:
    """Export the hierarchy as nested folders under DEST."""
    from structuredtree.config import load_settings
    from structuredtree.export import export_hierarchy

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, _ = _open_workspace(settings)

    with console.status("Exporting notes..."):
        report = export_hierarchy(workspace, dest)

    if report.exported:
        console.print(f"[green]✓[/green] Exported {report.exported} notes to {report.folder}")
    if report.failed:
        console.print(f"[red]✗[/red] Failed to export {report.failed} subtrees")


@cli.command()
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the graph as node-link JSON",
)
@click.pass_context
def graph(ctx: click.Context, output: Path | None) -> None:
    """Build the note graph and show its statistics."""
    from structuredtree.config import load_settings
    from structuredtree.graph import build_graph, graph_stats, save_graph

    settings = load_settings(ctx.obj.get("config_path"))
    workspace, _ = _open_workspace(settings)

    with console.status("Building graph..."):
        note_graph = build_graph(workspace)

    gs = graph_stats(note_graph)
    console.print("\n[bold]Note Graph:[/bold]")
    console.print(f"  Nodes: {gs['nodes']}")
    console.print(f"  Edges: {gs['edges']}")
    console.print(f"    hierarchy: {gs['hierarchy_edges']}")
    console.print(f"    link: {gs['link_edges']}")
    console.print(f"  Unresolved: {gs['unresolved']}")
    console.print(f"  Orphans: {gs['orphans']}")

    if output is not None:
        save_graph(note_graph, output)
        console.print(f"[green]✓[/green] Saved to {output}")


@cli.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Watch the store and keep every vault tree in sync."""
    from structuredtree.config import load_settings
    from structuredtree.engine import StructuredWorkspace
    from structuredtree.events import TreeChangedEvent, WorkspaceEventBus
    from structuredtree.store import FrontmatterMetadataProvider, LocalFileStore
    from structuredtree.sync import TreeSynchronizer
    from structuredtree.watcher import VaultWatcher

    settings = load_settings(ctx.obj.get("config_path"))
    if not settings.store_root.is_dir():
        console.print(f"[red]✗[/red] Store root {settings.store_root} does not exist.")
        sys.exit(1)

    store = LocalFileStore(settings.store_root)
    metadata = FrontmatterMetadataProvider(store, settings.tree.note_extension)
    workspace = StructuredWorkspace(settings, store, metadata, on_invalid_root=_warn_invalid_root)
    workspace.change_vault(settings.vaults)

    event_bus = WorkspaceEventBus()
    synchronizer = TreeSynchronizer(workspace, event_bus, debounce_ms=settings.watch.debounce_ms)
    store.subscribe(synchronizer.handle_event)
    watcher = VaultWatcher(store, settings.watch.excluded_folders, synchronizer.handle_event)

    async def _report(event: TreeChangedEvent) -> None:
        console.print(f"[cyan]~[/cyan] updated: {', '.join(event.vault_names)}")

    event_bus.subscribe(TreeChangedEvent, _report)

    console.print(f"[green]✓[/green] Watching {store.root}")
    console.print(f"  Vaults: {', '.join(v.name for v in workspace.vault_list)}")

    async def _run_watch() -> None:
        sync_task = asyncio.create_task(synchronizer.run())
        watcher.start()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass
        finally:
            watcher.stop()

    try:
        asyncio.run(_run_watch())
    except KeyboardInterrupt:
        watcher.stop()
        console.print("\n[yellow]Watcher stopped.[/yellow]")


if __name__ == "__main__":
    cli()
