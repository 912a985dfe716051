# Core app-level configuration
from .config import settings

__all__ = ["settings"]
