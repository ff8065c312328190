"""chatgraph - link graph and budgeted context assembly for saved chat threads."""

__version__ = "0.1.0"
