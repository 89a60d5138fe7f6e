"""pgdesk: a terminal desktop client for PostgreSQL servers."""

__version__ = "0.1.0"
