import logging
from typing import Any, Mapping

from session_agent.storage import KeyValueStore

logger = logging.getLogger(__name__)


class SessionStateStore:
    """Per-session key/value state with shallow-merge updates.

    No schema is enforced here; tools validate what they write.
    """

    def __init__(self, store: KeyValueStore, session_id: str):
        self.store = store
        self.session_id = session_id
        self.key = f"session:{session_id}:state"

    async def get(self) -> dict[str, Any]:
        return dict(await self.store.get(self.key) or {})

    async def merge(self, partial: Mapping[str, Any]) -> dict[str, Any]:
        """Overwrite each key in ``partial``; other keys are untouched."""
        if not isinstance(partial, Mapping):
            raise TypeError("merge() expects a mapping")

        def apply(current):
            merged = dict(current or {})
            merged.update(partial)
            return merged

        merged = await self.store.update(self.key, apply)
        logger.debug(
            f"Session {self.session_id}: merged state keys {sorted(partial)}"
        )
        return merged
