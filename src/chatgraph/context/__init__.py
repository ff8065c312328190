"""Budgeted context assembly.

Aggregates messages from a conversation, its parent and its linked
conversations into a token-bounded history for re-submission to a model.

Usage:
    from chatgraph.context import ContextAssembler

    assembler = ContextAssembler(conversation_store, link_service)
    result = await assembler.assemble("conv_1", max_tokens=3000)
    print(result.summary())
"""

from chatgraph.context.engine import ContextAssembler
from chatgraph.context.models import ContextResult, SourceStats
from chatgraph.context.tokens import HeuristicTokenizer, TokenEstimator, Tokenizer

__all__ = [
    "ContextAssembler",
    "ContextResult",
    "SourceStats",
    "HeuristicTokenizer",
    "TokenEstimator",
    "Tokenizer",
]
