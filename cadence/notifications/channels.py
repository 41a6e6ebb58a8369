"""The interface every notification delivery channel implements."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationChannel(Protocol):
    """A way of reaching run recipients (email, log, ...).

    ``name`` doubles as the recipient prefix the router recognizes, so a
    recipient written ``email:ada@example.com`` is delivered by the channel
    named ``email``.
    """

    @property
    def name(self) -> str: ...

    async def send(self, recipient: str, message: str, *, subject: str | None = None) -> bool:
        """Deliver *message* to *recipient*. Returns False when delivery failed."""
        ...
