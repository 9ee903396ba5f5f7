"""CLI Agent Fleet - role-based orchestration of CLI coding agents."""

__version__ = "0.1.0"
