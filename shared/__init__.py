"""Shared helpers (component logging, root logging configuration)."""
