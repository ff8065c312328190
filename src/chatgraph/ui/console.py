"""Rich-powered console output for chatgraph."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from chatgraph import __version__
from chatgraph.context.models import ContextResult
from chatgraph.context.tokens import format_tokens
from chatgraph.graph.models import ConversationGraph, LinkSet
from chatgraph.models import Conversation, Link

_LINK_STYLE = {
    "fork": "magenta",
    "continuation": "green",
    "reference": "yellow",
}


def _link_label(link: Link) -> str:
    style = _LINK_STYLE.get(link.type.value, "white")
    return f"[{style}]{link.type.value}[/{style}]"


class Console:
    """Terminal output for chatgraph using Rich."""

    def __init__(self) -> None:
        self.console = RichConsole()

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]chatgraph[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Linked conversations, budgeted context[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def show_conversations(self, conversations: list[Conversation]) -> None:
        table = Table(title="Conversations", border_style="cyan")
        table.add_column("ID", style="bold")
        table.add_column("Title")
        table.add_column("Model", style="dim")
        table.add_column("Messages", justify="right", style="cyan")

        for conv in conversations:
            flags = ""
            if conv.is_favorite:
                flags += "★ "
            if conv.is_archived:
                flags += "[dim](archived)[/dim] "
            table.add_row(conv.id, f"{flags}{conv.title}", conv.model, str(len(conv.messages)))

        self.console.print(table)

    def show_links(self, conversation_id: str, links: LinkSet) -> None:
        tree = Tree(f"[bold cyan]{conversation_id}[/bold cyan]")
        out_branch = tree.add(f"[bold]outgoing[/bold] ({len(links.outgoing)})")
        for link in links.outgoing:
            out_branch.add(f"{_link_label(link)} → {link.target_id} [dim]{link.id}[/dim]")
        in_branch = tree.add(f"[bold]incoming[/bold] ({len(links.incoming)})")
        for link in links.incoming:
            in_branch.add(f"{_link_label(link)} ← {link.source_id} [dim]{link.id}[/dim]")
        self.console.print(tree)

    def show_path(self, path: list[Conversation]) -> None:
        """Display a root-to-leaf chain as a nested tree."""
        if not path:
            self.info("No parent chain (conversation has no fork/continuation parent)")
            return
        tree = Tree(f"[bold]{path[0].title}[/bold] [dim]{path[0].id}[/dim]")
        node = tree
        for conv in path[1:]:
            node = node.add(f"[bold]{conv.title}[/bold] [dim]{conv.id}[/dim]")
        self.console.print(tree)

    def graph_tree(self, graph: ConversationGraph) -> Tree:
        """Build a tree of each root with its descendants along outgoing links.

        Nodes reached a second time are listed as "(seen)" and not expanded.
        """
        tree = Tree("[bold cyan]Conversation graph[/bold cyan]")
        printed: set[str] = set()
        # Components with no root (reference cycles) follow the rooted ones
        starts = list(graph.roots) + [n for n in graph.nodes if n not in graph.roots]

        for start in starts:
            stack: list[tuple[Tree, str, Link | None]] = [(tree, start, None)]
            while stack:
                branch, node_id, via = stack.pop()
                node = graph.nodes.get(node_id)
                if node is None or (via is None and node_id in printed):
                    continue
                label = f"[bold]{node.conversation.title}[/bold] [dim]{node_id}[/dim]"
                if via is not None:
                    label = f"{_link_label(via)} {label}"
                if node_id in printed:
                    branch.add(f"{label} [dim](seen)[/dim]")
                    continue
                printed.add(node_id)
                child = branch.add(label)
                for link in reversed(node.outgoing):
                    stack.append((child, link.target_id, link))
        return tree

    def show_graph(self, graph: ConversationGraph) -> None:
        self.console.print(self.graph_tree(graph))

    def show_stats(self, stats: dict) -> None:
        table = Table(title="Graph Statistics", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right", style="cyan")

        table.add_row("Conversations", str(stats.get("conversations", 0)))
        table.add_row("Links", str(stats.get("links", 0)))
        table.add_row("Roots", str(stats.get("roots", 0)))
        table.add_row("Components", str(stats.get("components", 0)))
        table.add_row("Max Depth", str(stats.get("max_depth", 0)))

        edge_types = stats.get("edge_types", {})
        if edge_types:
            table.add_section()
            for kind, count in sorted(edge_types.items(), key=lambda x: -x[1]):
                table.add_row(f"  {kind} links", str(count))

        self.console.print(table)

    def show_context(self, result: ContextResult) -> None:
        color = "yellow" if result.truncated else "green"
        body = (
            f"[bold]Strategy:[/bold] {result.strategy.value}\n"
            f"[bold]Tokens:[/bold] {format_tokens(result.total_tokens)} / "
            f"{format_tokens(result.token_budget)} ({result.budget_used_pct:.0f}%)\n"
            f"[bold]Messages:[/bold] {len(result.messages)} of {result.candidates_available}"
        )
        if result.truncation_reason:
            body += f"\n[bold]Truncation:[/bold] {result.truncation_reason}"
        self.console.print(
            Panel(body, title=f"[bold]Context for {result.conversation_id}[/bold]", border_style=color)
        )

        if result.sources:
            table = Table(border_style="dim")
            table.add_column("Source", style="bold")
            table.add_column("Title")
            table.add_column("Messages", justify="right", style="cyan")
            table.add_column("Tokens", justify="right", style="cyan")
            for src in result.sources:
                table.add_row(
                    src.conversation_id, src.title,
                    str(src.message_count), format_tokens(src.tokens),
                )
            self.console.print(table)
