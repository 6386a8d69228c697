"""wikitree - a hierarchical markdown wiki core."""

__version__ = "0.1.0"
