"""Result records for link graph queries."""

from __future__ import annotations

import networkx as nx
from pydantic import BaseModel, Field

from chatgraph.models import Conversation, Link, LinkType


class LinkSet(BaseModel):
    """Links touching one conversation, split by direction."""

    outgoing: list[Link] = Field(default_factory=list)
    incoming: list[Link] = Field(default_factory=list)

    @property
    def all(self) -> list[Link]:
        return self.outgoing + self.incoming


class LinkedConversations(BaseModel):
    """Neighbouring conversations grouped by relationship."""

    parents: list[Conversation] = Field(default_factory=list)
    children: list[Conversation] = Field(default_factory=list)
    related: list[Conversation] = Field(default_factory=list)


class GraphNode(BaseModel):
    conversation: Conversation
    outgoing: list[Link] = Field(default_factory=list)
    incoming: list[Link] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.conversation.id

    @property
    def is_root(self) -> bool:
        return not self.incoming


class ConversationGraph(BaseModel):
    """A materialised set of graph nodes.

    ``roots`` lists the ids of nodes with no incoming links, in node order.
    """

    nodes: dict[str, GraphNode] = Field(default_factory=dict)
    roots: list[str] = Field(default_factory=list)

    def add(self, node: GraphNode) -> None:
        self.nodes[node.id] = node
        if node.is_root:
            self.roots.append(node.id)

    def edges(self) -> list[Link]:
        """Every distinct link seen on any node."""
        seen: dict[str, Link] = {}
        for node in self.nodes.values():
            for link in node.outgoing + node.incoming:
                seen.setdefault(link.id, link)
        return list(seen.values())

    def to_networkx(self) -> nx.MultiDiGraph:
        """Export as a networkx multigraph keyed by link id.

        Links whose far end is outside the node set are dropped.
        """
        g = nx.MultiDiGraph()
        for node_id, node in self.nodes.items():
            conv = node.conversation
            g.add_node(
                node_id,
                title=conv.title,
                model=conv.model,
                message_count=len(conv.messages),
            )
        for link in self.edges():
            if link.source_id in self.nodes and link.target_id in self.nodes:
                g.add_edge(
                    link.source_id, link.target_id,
                    key=link.id, type=link.type.value,
                )
        return g

    def stats(self) -> dict:
        g = self.to_networkx()
        edge_types: dict[str, int] = {}
        for _, _, data in g.edges(data=True):
            edge_types[data["type"]] = edge_types.get(data["type"], 0) + 1

        parent_edges = nx.DiGraph()
        parent_edges.add_nodes_from(g.nodes)
        parent_edges.add_edges_from(
            (u, v) for u, v, d in g.edges(data=True)
            if LinkType(d["type"]).is_parent_edge
        )

        return {
            "conversations": g.number_of_nodes(),
            "links": g.number_of_edges(),
            "roots": len(self.roots),
            "components": nx.number_weakly_connected_components(g) if len(g) else 0,
            "max_depth": nx.dag_longest_path_length(parent_edges)
            if len(parent_edges) and nx.is_directed_acyclic_graph(parent_edges)
            else 0,
            "edge_types": edge_types,
        }
