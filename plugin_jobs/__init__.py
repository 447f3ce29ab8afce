"""Durable single-flight job queue and worker for game server plugin operations."""

__version__ = "0.1.0"
