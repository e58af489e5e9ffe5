"""
Observer list for synchronous change notification.
"""
import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger("cache.observers")

T = TypeVar("T")

Listener = Callable[[T], None]


class ObserverList(Generic[T]):
    """
    Register/unregister callbacks and fan a value out to all of them.

    Fan-out is synchronous and runs over a snapshot of the listener list,
    so a listener may unsubscribe itself while being notified. A listener
    that raises is logged and the remaining listeners still run.
    """

    def __init__(self, name: str = "observers"):
        self._name = name
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A function that deregisters this listener. Calling it more than
            once is harmless.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, value: T) -> None:
        """Invoke every registered listener with value."""
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.warning(f"Listener on {self._name} failed: {e}")
