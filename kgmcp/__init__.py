"""Knowledge base entries and typed note connections in SQLite, served as JSON-RPC tools over stdio."""

__version__ = "1.0.0"