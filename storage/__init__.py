from __future__ import annotations

from .bootstrap import get_storage, init_storage, open_storage

__all__ = ["init_storage", "get_storage", "open_storage"]
