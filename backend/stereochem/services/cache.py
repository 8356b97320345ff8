import logging
from typing import Any, Optional
from stereochem.models import Molecule
from stereochem.chemistry.molecule import graph_key

logger = logging.getLogger(__name__)

class ResultCache:
    """
    Session-scoped key/value store for successful provider results.

    Unbounded and never expires: chemical facts don't change during a
    session. Nothing is persisted; a new process starts empty. Stored values
    are pydantic models and are copied on the way in and out so callers
    can't mutate a cached entry.
    """

    def __init__(self):
        self._entries: dict[str, Any] = {}

    @staticmethod
    def _copy(value: Any) -> Any:
        if hasattr(value, "model_copy"):
            return value.model_copy(deep=True)
        return value

    def get(self, key: str) -> Optional[Any]:
        value = self._entries.get(key)
        if value is not None:
            logger.debug("Cache hit: %s", key)
        return self._copy(value)

    def set(self, key: str, value: Any):
        self._entries[key] = self._copy(value)

    def clear(self):
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

def resolve_key(query: str) -> str:
    return f"resolve:{query.strip().lower()}"

def analysis_key(molecule: Molecule) -> str:
    return f"analysis:{graph_key(molecule)}"

def explain_key(topic: str) -> str:
    return f"explain:{topic.strip().lower()}"

_default_cache: Optional[ResultCache] = None

def default_cache() -> ResultCache:
    """Process-wide cache shared by workspaces that don't bring their own."""
    global _default_cache
    if _default_cache is None:
        _default_cache = ResultCache()
    return _default_cache

