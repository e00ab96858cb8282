"""narrative-graph: entity resolution for narrative knowledge graphs."""

__version__ = "0.1.0"
