"""Academic task tracker core: local state cache kept in sync with a remote store."""

__version__ = "0.1.0"
