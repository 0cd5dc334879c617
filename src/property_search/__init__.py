"""UK property search: Rightmove market statistics around tube stations."""

__version__ = "0.3.0"
