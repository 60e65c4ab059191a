"""Comment threading, feed ranking and optimistic voting for the campus feed."""

__version__ = "0.1.0"
