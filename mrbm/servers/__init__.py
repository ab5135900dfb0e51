"""Server records and the registry that owns them."""

from .models import ServerRecord
from .registry import ServerRegistry

__all__ = ["ServerRecord", "ServerRegistry"]
