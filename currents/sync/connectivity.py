"""Online/offline signal consumed by the sync executor."""

import logging
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from currents.remote.base import RemoteStore

logger = logging.getLogger(__name__)

OnlineListener = Callable[[], None]


class Connectivity:
    """Boolean "online" flag plus a "became online" event.

    Listeners fire only on an offline -> online transition, never when the
    flag is re-set to a value it already has.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[OnlineListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: OnlineListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: OnlineListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_online(self, online: bool) -> None:
        was_online = self._online
        self._online = online

        if online and not was_online:
            logger.info("Connectivity restored")
            for listener in list(self._listeners):
                listener()
        elif was_online and not online:
            logger.info("Connectivity lost")

    async def probe(self, store: "RemoteStore") -> bool:
        """Update the flag from the remote store's health check.

        Returns:
            The resulting online state
        """
        try:
            healthy = await store.health_check()
        except Exception as e:
            logger.debug(f"Health probe failed: {e}")
            healthy = False

        self.set_online(healthy)
        return healthy
