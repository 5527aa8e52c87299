"""tasklink: shared task tracker client (sync engine + access policy)."""

__version__ = "0.1.0"
