"""Local-only deployment mode (SQLite)."""
