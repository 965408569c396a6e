"""DuckDB storage for the note graph."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
