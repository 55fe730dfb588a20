"""
Cache invalidation signal.

Fire-and-forget: after a promotion or a collection change, the owner's public
profile, their dashboard and the catalog are marked stale and every listener
is told; nothing is kept between calls. A failing listener is logged and never affects the caller.
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

logger = logging.getLogger(__name__)

Listener = Callable[[str, List[str]], Union[None, Awaitable[None]]]


def stale_paths_for(user_id: str) -> List[str]:
    return [f"/u/{user_id}", "/dashboard", "/podcasts"]


class ViewInvalidator:
    def __init__(self, listeners: Optional[List[Listener]] = None):
        self._listeners: List[Listener] = list(listeners or [])

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def invalidate(self, user_id: str) -> List[str]:
        paths = stale_paths_for(user_id)
        for listener in self._listeners:
            try:
                result = listener(user_id, paths)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("View invalidation listener failed for %s", user_id)
        return paths
