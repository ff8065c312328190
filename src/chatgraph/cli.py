"""Command-line interface for chatgraph."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from pydantic import ValidationError

from chatgraph import __version__
from chatgraph.config import (
    ProjectConfig,
    find_project_root,
    get_db_path,
    load_config,
    save_config,
    set_config_value,
)
from chatgraph.context.engine import ContextAssembler
from chatgraph.context.tokens import TokenEstimator
from chatgraph.exceptions import ChatGraphError
from chatgraph.graph.links import LinkGraphService
from chatgraph.models import Conversation, LinkType, TruncationStrategy
from chatgraph.store.sqlite import SQLiteStore
from chatgraph.ui.console import Console

console = Console()


@dataclass
class Workspace:
    """Everything a command needs, wired over the project's SQLite store."""

    root: Path
    config: ProjectConfig
    store: SQLiteStore
    service: LinkGraphService
    assembler: ContextAssembler


def _get_project_root(path: str | None = None) -> Path:
    """Find the project root or error."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root

    root = find_project_root()
    if root is None:
        console.error(
            "No chatgraph project found. Run 'chatgraph init' first, "
            "or specify a path with --path."
        )
        sys.exit(1)
    return root


def _open_workspace(path: str | None) -> Workspace:
    root = _get_project_root(path)
    config = load_config(root)
    db_path = get_db_path(root, config)
    if not db_path.exists():
        console.error("No store found. Run 'chatgraph init' first.")
        sys.exit(1)

    store = SQLiteStore(db_path)
    service = LinkGraphService(store.conversations, store.links)
    estimator = TokenEstimator(
        model_limits=config.tokens.model_limits,
        default_limit=config.tokens.default_limit,
    )
    assembler = ContextAssembler(
        store.conversations, service, estimator=estimator, defaults=config.context
    )
    return Workspace(root, config, store, service, assembler)


def _run(path: str | None, action):
    """Open the workspace, run ``action(ws)`` to completion and close the store.

    chatgraph errors are reported and turned into exit code 1.
    """
    ws = None
    try:
        ws = _open_workspace(path)
        return asyncio.run(action(ws))
    except ChatGraphError as e:
        console.error(str(e))
        sys.exit(1)
    finally:
        if ws is not None:
            ws.store.close()


path_option = click.option("--path", "-p", default=None, help="Path to the project root.")


@click.group()
@click.version_option(version=__version__, prog_name="chatgraph")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """chatgraph - fork, continue and link saved chat threads."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
        )


@main.command()
@path_option
def init(path: str | None):
    """Create a .chatgraph store in the given directory."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    console.info(f"Initializing chatgraph in: {root}")

    try:
        config = load_config(root)
    except ChatGraphError as e:
        console.error(str(e))
        sys.exit(1)
    config.name = root.name
    config.root_path = str(root)
    save_config(root, config)

    store = SQLiteStore(get_db_path(root, config))
    store.execute("SELECT 1")
    store.close()
    console.success("Store created in .chatgraph/")


@main.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@path_option
def import_(file: str, path: str | None):
    """Load conversations from a JSON list of conversation records."""
    try:
        data = json.loads(Path(file).read_text())
        if isinstance(data, dict):
            data = [data]
        conversations = [Conversation.model_validate(item) for item in data]
    except (json.JSONDecodeError, ValidationError) as e:
        console.error(f"Could not read {file}: {e}")
        sys.exit(1)

    async def action(ws: Workspace):
        for conv in conversations:
            await ws.store.conversations.save(conv)

    _run(path, action)
    console.success(f"Imported {len(conversations)} conversation(s)")


@main.command(name="list")
@path_option
def list_(path: str | None):
    """List stored conversations."""
    async def action(ws: Workspace):
        return await ws.store.conversations.list()

    conversations = _run(path, action)
    if not conversations:
        console.info("No conversations stored")
        return
    console.show_conversations(conversations)


@main.command()
@click.argument("conversation_id")
@click.argument("message_id")
@click.option("--title", default=None, help="Title for the new conversation.")
@path_option
def fork(conversation_id: str, message_id: str, title: str | None, path: str | None):
    """Fork a conversation at MESSAGE_ID."""
    async def action(ws: Workspace):
        return await ws.service.fork(conversation_id, message_id, title=title)

    forked, link = _run(path, action)
    console.success(f"Forked into {forked.id}")
    console.info(f"{len(forked.messages)} messages copied, link {link.id}")


@main.command(name="continue")
@click.argument("conversation_id")
@click.option("--copy-all", is_flag=True, help="Copy every message into the new conversation.")
@click.option("--reason", default=None, help="Why the conversation is being continued.")
@click.option("--title", default=None, help="Title for the new conversation.")
@path_option
def continue_(
    conversation_id: str, copy_all: bool, reason: str | None,
    title: str | None, path: str | None,
):
    """Start a new conversation continuing CONVERSATION_ID."""
    async def action(ws: Workspace):
        return await ws.service.continue_from(
            conversation_id, copy_all_messages=copy_all, reason=reason, title=title,
        )

    continued, link = _run(path, action)
    console.success(f"Continued into {continued.id}")
    console.info(f"{len(continued.messages)} messages copied, link {link.id}")


@main.command()
@click.argument("source_id")
@click.argument("target_id")
@click.option("--reason", default=None, help="Why the conversations are related.")
@click.option(
    "--parent", is_flag=True,
    help="Create a continuation edge (cycle-checked) instead of a reference.",
)
@path_option
def link(source_id: str, target_id: str, reason: str | None, parent: bool, path: str | None):
    """Link SOURCE_ID to TARGET_ID."""
    async def action(ws: Workspace):
        if parent:
            return await ws.service.add_parent_link(
                source_id, target_id, LinkType.CONTINUATION, reason=reason
            )
        return await ws.service.reference(source_id, target_id, reason=reason)

    created = _run(path, action)
    console.success(f"Created {created.type.value} link {created.id}")


@main.command()
@click.argument("link_id")
@path_option
def unlink(link_id: str, path: str | None):
    """Delete a link. The conversations are kept."""
    async def action(ws: Workspace):
        await ws.service.delete_link(link_id)

    _run(path, action)
    console.success(f"Deleted link {link_id}")


@main.command()
@click.argument("conversation_id")
@path_option
def links(conversation_id: str, path: str | None):
    """Show links touching a conversation."""
    async def action(ws: Workspace):
        return await ws.service.get_links(conversation_id)

    console.show_links(conversation_id, _run(path, action))


@main.command(name="path")
@click.argument("conversation_id")
@path_option
def path_(conversation_id: str, path: str | None):
    """Show the fork/continuation chain leading to a conversation."""
    async def action(ws: Workspace):
        return await ws.service.get_conversation_path(conversation_id)

    console.show_path(_run(path, action))


@main.command()
@click.argument("conversation_id", required=False)
@click.option("--stats", "show_stats", is_flag=True, help="Show graph statistics only.")
@path_option
def graph(conversation_id: str | None, show_stats: bool, path: str | None):
    """Show the link graph (whole store, or one connected component)."""
    async def action(ws: Workspace):
        return await ws.service.build_graph(conversation_id)

    built = _run(path, action)
    if not built.nodes:
        console.info("Graph is empty")
        return
    if show_stats:
        console.show_stats(built.stats())
    else:
        console.show_graph(built)


@main.command()
@click.argument("conversation_id")
@click.option("--max-tokens", "-b", type=int, default=None, help="Token budget.")
@click.option(
    "--strategy", "-s", default=None,
    type=click.Choice([s.value for s in TruncationStrategy]),
    help="Truncation strategy.",
)
@click.option("--include-link", "include_links", multiple=True, help="Link id to load.")
@click.option("--render", is_flag=True, help="Print the selected transcript.")
@path_option
def context(
    conversation_id: str, max_tokens: int | None, strategy: str | None,
    include_links: tuple[str, ...], render: bool, path: str | None,
):
    """Assemble the budgeted context for a conversation."""
    async def action(ws: Workspace):
        return await ws.assembler.assemble(
            conversation_id,
            max_tokens=max_tokens,
            strategy=strategy,
            include_links=list(include_links) or None,
        )

    result = _run(path, action)
    console.show_context(result)
    if render:
        click.echo(result.render())


@main.group()
def config():
    """View or change project configuration."""


@config.command(name="show")
@path_option
def config_show(path: str | None):
    """Print the project configuration as JSON."""
    root = _get_project_root(path)
    try:
        config = load_config(root)
    except ChatGraphError as e:
        console.error(str(e))
        sys.exit(1)
    click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@path_option
def config_set(key: str, value: str, path: str | None):
    """Set a configuration value (dot notation, e.g. context.budget_ratio)."""
    root = _get_project_root(path)
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    try:
        updated = set_config_value(load_config(root), key, parsed)
    except (KeyError, ChatGraphError) as e:
        console.error(str(e).strip("'\""))
        sys.exit(1)
    save_config(root, updated)
    console.success(f"Set {key} = {parsed!r}")


if __name__ == "__main__":
    main()
