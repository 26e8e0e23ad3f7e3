"""
Connectivity observers - online/offline signal consumed by the client.
"""

from abc import ABC, abstractmethod
from typing import Callable

from loguru import logger

ConnectivityListener = Callable[[bool], None]


class ConnectivityObserver(ABC):
    """Reports network reachability and notifies on transitions."""

    @abstractmethod
    def is_online(self) -> bool:
        ...

    @abstractmethod
    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        ...


class ManualConnectivity(ConnectivityObserver):
    """
    Connectivity flag driven by the application.

    Listeners are called with the new state on transitions only, on the
    thread that changed it. HttpClient schedules any replay onto the event
    loop that parked the requests, so the flag may be flipped from another
    thread.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[ConnectivityListener] = []

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self) -> None:
        self._set(True)

    def set_offline(self) -> None:
        self._set(False)

    def _set(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info(f"[Connectivity] {'online' if online else 'offline'}")
        for listener in list(self._listeners):
            listener(online)
