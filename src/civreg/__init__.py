"""civreg - flat-file record store for a civil registry."""

__version__ = "0.1.0"
