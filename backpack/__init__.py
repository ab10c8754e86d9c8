"""backpack: a GitHub helper CLI with scriptable plugins."""

__version__ = "0.1.0"
