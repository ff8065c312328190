"""Link graph over saved conversations."""

from chatgraph.graph.links import LinkGraphService
from chatgraph.graph.models import (
    ConversationGraph,
    GraphNode,
    LinkedConversations,
    LinkSet,
)

__all__ = [
    "LinkGraphService",
    "ConversationGraph",
    "GraphNode",
    "LinkedConversations",
    "LinkSet",
]
