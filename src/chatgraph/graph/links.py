"""Fork, continuation and reference links between conversations.

Parent-type edges (fork, continuation) form a forest that must stay acyclic;
reference edges are annotations and may form cycles. Every traversal here is
iterative with an explicit visited set so reference cycles and deep chains
are safe.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator

from chatgraph.exceptions import InvalidOperationError, NotFoundError
from chatgraph.graph.models import (
    ConversationGraph,
    GraphNode,
    LinkedConversations,
    LinkSet,
)
from chatgraph.models import (
    ContinuationMetadata,
    Conversation,
    ForkMetadata,
    Link,
    LinkType,
    ReferenceMetadata,
    new_id,
    now_ms,
)
from chatgraph.store.base import ConversationStore, LinkStore

logger = logging.getLogger(__name__)

FORK_PREVIEW_CHARS = 100


class LinkGraphService:
    """Creates, deletes and traverses links between saved conversations.

    Usage:
        service = LinkGraphService(conversation_store, link_store)
        forked, link = await service.fork("conv_1", "msg_3")
        path = await service.get_conversation_path(forked.id)
    """

    def __init__(self, conversations: ConversationStore, links: LinkStore) -> None:
        self.conversations = conversations
        self.links = links

    async def _require(self, conversation_id: str) -> Conversation:
        conv = await self.conversations.get(conversation_id)
        if conv is None:
            raise NotFoundError("conversation", conversation_id)
        return conv

    # -------------------------------------------------------------------
    # Link creation
    # -------------------------------------------------------------------

    async def fork(
        self,
        source_id: str,
        fork_message_id: str,
        *,
        title: str | None = None,
        model: str | None = None,
        folder_id: str | None = None,
        tags: list[str] | None = None,
    ) -> tuple[Conversation, Link]:
        """Branch a new conversation off ``source_id`` at a message.

        The new conversation holds the source's messages up to and including
        the fork point. If saving the link fails, the new conversation is
        left in place and the error propagates.
        """
        source = await self._require(source_id)
        index = source.message_index(fork_message_id)
        if index == -1:
            raise NotFoundError(
                "message", fork_message_id, f"in conversation '{source_id}'"
            )
        fork_point = source.messages[index]

        created = now_ms()
        forked = Conversation(
            id=new_id("conv_fork"),
            title=title or f"Fork: {source.title}",
            model=model or source.model,
            messages=list(source.messages[: index + 1]),
            created_at=created,
            updated_at=created,
            parent_id=source.id,
            folder_id=folder_id or source.folder_id,
            tags=list(tags or []),
        )
        link = Link(
            id=new_id("link_fork"),
            source_id=source.id,
            target_id=forked.id,
            type=LinkType.FORK,
            fork_message_id=fork_message_id,
            created_at=created,
            metadata=ForkMetadata(
                fork_message_preview=fork_point.content[:FORK_PREVIEW_CHARS]
            ),
        )
        await self._persist_pair(forked, link)
        logger.info(
            "Created fork %s -> %s at message %s", source.id, forked.id, fork_message_id
        )
        return forked, link

    async def continue_from(
        self,
        source_id: str,
        *,
        copy_all_messages: bool = False,
        reason: str | None = None,
        title: str | None = None,
        model: str | None = None,
        folder_id: str | None = None,
        tags: list[str] | None = None,
    ) -> tuple[Conversation, Link]:
        """Start a new conversation that continues ``source_id``."""
        source = await self._require(source_id)

        created = now_ms()
        continued = Conversation(
            id=new_id("conv_cont"),
            title=title or f"Continued: {source.title}",
            model=model or source.model,
            messages=list(source.messages) if copy_all_messages else [],
            created_at=created,
            updated_at=created,
            parent_id=source.id,
            folder_id=folder_id or source.folder_id,
            tags=list(tags or []),
        )
        link = Link(
            id=new_id("link_cont"),
            source_id=source.id,
            target_id=continued.id,
            type=LinkType.CONTINUATION,
            created_at=created,
            metadata=ContinuationMetadata(reason=reason),
        )
        await self._persist_pair(continued, link)
        logger.info("Created continuation %s -> %s", source.id, continued.id)
        return continued, link

    async def _persist_pair(self, conversation: Conversation, link: Link) -> None:
        await self.conversations.save(conversation)
        try:
            await self.links.save(link)
        except Exception:
            logger.warning(
                "Link %s failed to save; conversation %s was kept", link.id, conversation.id
            )
            raise

    async def reference(
        self, source_id: str, target_id: str, reason: str | None = None
    ) -> Link:
        """Annotate ``source_id`` as referring to ``target_id``.

        No cycle check: reference edges are allowed to loop.
        """
        if source_id == target_id:
            raise InvalidOperationError(
                f"Conversation '{source_id}' cannot reference itself"
            )
        await self._require(source_id)
        await self._require(target_id)

        link = Link(
            id=new_id("link_ref"),
            source_id=source_id,
            target_id=target_id,
            type=LinkType.REFERENCE,
            metadata=ReferenceMetadata(reason=reason),
        )
        await self.links.save(link)
        logger.info("Created reference %s -> %s", source_id, target_id)
        return link

    async def add_parent_link(
        self,
        source_id: str,
        target_id: str,
        link_type: LinkType = LinkType.CONTINUATION,
        reason: str | None = None,
    ) -> Link:
        """Link two existing conversations with a parent-type edge.

        Rejected if it would make ``target_id`` an ancestor of itself.
        """
        if not link_type.is_parent_edge:
            raise InvalidOperationError("Use reference() for reference links")
        if link_type is LinkType.FORK:
            raise InvalidOperationError("Forks are created with fork()")
        if source_id == target_id:
            raise InvalidOperationError(
                f"Conversation '{source_id}' cannot link to itself"
            )
        await self._require(source_id)
        await self._require(target_id)
        if await self.would_create_cycle(source_id, target_id):
            raise InvalidOperationError(
                f"Linking {source_id} -> {target_id} would create a cycle"
            )

        link = Link(
            id=new_id("link_cont"),
            source_id=source_id,
            target_id=target_id,
            type=link_type,
            metadata=ContinuationMetadata(reason=reason),
        )
        await self.links.save(link)
        logger.info("Created %s %s -> %s", link_type.value, source_id, target_id)
        return link

    async def delete_link(self, link_id: str) -> None:
        """Remove an edge. Neither endpoint conversation is touched."""
        if await self.links.get(link_id) is None:
            raise NotFoundError("link", link_id)
        await self.links.delete(link_id)
        logger.info("Deleted link %s", link_id)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    async def get_links(self, conversation_id: str) -> LinkSet:
        return LinkSet(
            outgoing=await self.links.by_source(conversation_id),
            incoming=await self.links.by_target(conversation_id),
        )

    async def get_linked_conversations(self, conversation_id: str) -> LinkedConversations:
        """Parents, children and related conversations of one conversation.

        Orphaned links (far end deleted) are skipped.
        """
        links = await self.get_links(conversation_id)
        result = LinkedConversations()

        for link in links.incoming:
            conv = await self.conversations.get(link.source_id)
            if conv is None:
                logger.warning("Skipping orphaned link %s", link.id)
                continue
            if link.type.is_parent_edge:
                result.parents.append(conv)
            else:
                result.related.append(conv)

        for link in links.outgoing:
            conv = await self.conversations.get(link.target_id)
            if conv is None:
                logger.warning("Skipping orphaned link %s", link.id)
                continue
            if link.type.is_parent_edge:
                result.children.append(conv)
            else:
                result.related.append(conv)

        return result

    async def iter_graph(self, root_id: str | None = None) -> AsyncIterator[GraphNode]:
        """Yield graph nodes lazily.

        With ``root_id``, walks the connected component breadth-first,
        following links in both directions. Without it, yields every stored
        conversation. Stop iterating to abandon the walk.
        """
        if root_id is None:
            for conv in await self.conversations.list():
                yield await self._node(conv)
            return

        visited: set[str] = set()
        queue: deque[str] = deque([root_id])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            conv = await self.conversations.get(current)
            if conv is None:
                continue
            node = await self._node(conv)
            yield node

            for link in node.outgoing + node.incoming:
                neighbour = link.other_end(current)
                if neighbour not in visited:
                    queue.append(neighbour)

    async def _node(self, conv: Conversation) -> GraphNode:
        links = await self.get_links(conv.id)
        return GraphNode(
            conversation=conv, outgoing=links.outgoing, incoming=links.incoming
        )

    async def build_graph(self, root_id: str | None = None) -> ConversationGraph:
        graph = ConversationGraph()
        async for node in self.iter_graph(root_id):
            graph.add(node)
        return graph

    async def find_parent_link(self, conversation_id: str) -> Link | None:
        """The incoming parent-type edge used for path reconstruction.

        When several exist, the earliest-created wins; store order breaks ties.
        """
        candidates = [
            link for link in await self.links.by_target(conversation_id)
            if link.type.is_parent_edge
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda link: link.created_at)

    async def get_conversation_path(self, conversation_id: str) -> list[Conversation]:
        """Root-to-``conversation_id`` chain along parent edges.

        Empty when the conversation has no parent edge. Stops early at a
        missing ancestor or at a corrupt parent cycle.
        """
        start = await self.conversations.get(conversation_id)
        if start is None:
            return []
        parent_link = await self.find_parent_link(start.id)
        if parent_link is None:
            return []

        path = [start]
        visited = {start.id}
        while parent_link is not None and parent_link.source_id not in visited:
            parent = await self.conversations.get(parent_link.source_id)
            if parent is None:
                break
            path.append(parent)
            visited.add(parent.id)
            parent_link = await self.find_parent_link(parent.id)

        path.reverse()
        return path

    async def would_create_cycle(self, source_id: str, target_id: str) -> bool:
        """True if adding ``source_id -> target_id`` would close a cycle.

        BFS forward from ``target_id`` over outgoing links looking for
        ``source_id``.
        """
        queue: deque[str] = deque([target_id])
        visited: set[str] = set()
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            if current == source_id:
                return True
            for link in await self.links.by_source(current):
                if link.target_id not in visited:
                    queue.append(link.target_id)
        return False
