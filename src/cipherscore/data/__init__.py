"""Data sources feeding the scoring driver."""

from .sources import Row, TextDataSource

__all__ = ["Row", "TextDataSource"]
