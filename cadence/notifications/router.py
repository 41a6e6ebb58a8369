"""NotificationRouter: picks a delivery channel for each recipient.

Recipients are plain addresses (``ada@example.com``) or carry an explicit
channel prefix (``log:ops``). Unprefixed recipients go to the requested
channel, then the default channel, then the only registered channel.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadence.notifications.channels import NotificationChannel

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Singleton accessed via ``NotificationRouter.get()``."""

    _instance: NotificationRouter | None = None

    def __init__(self) -> None:
        self._by_name: dict[str, NotificationChannel] = {}
        self._default_name = ""

    @classmethod
    def get(cls) -> NotificationRouter:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Drop the shared instance (tests only)."""
        cls._instance = None

    # -- Registry --------------------------------------------------------------

    def register_channel(self, channel: NotificationChannel, *, default: bool = False) -> None:
        """Add *channel*. Raises ValueError if its name is taken."""
        if channel.name in self._by_name:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._by_name[channel.name] = channel
        if default:
            self._default_name = channel.name

    def set_default_channel(self, name: str) -> None:
        """Raises KeyError if *name* is not registered."""
        if name not in self._by_name:
            msg = f"Channel '{name}' is not registered"
            raise KeyError(msg)
        self._default_name = name

    def get_channel(self, name: str) -> NotificationChannel | None:
        return self._by_name.get(name)

    def list_channels(self) -> list[str]:
        return list(self._by_name)

    @property
    def default_channel_name(self) -> str:
        return self._default_name

    # -- Delivery --------------------------------------------------------------

    def route(
        self, recipient: str, channel: str | None = None
    ) -> tuple[NotificationChannel | None, str]:
        """Return ``(channel, address)`` for *recipient*.

        A ``name:address`` prefix naming a registered channel wins over
        *channel*. The channel is None when nothing matches.
        """
        prefix, sep, address = recipient.partition(":")
        if sep and prefix in self._by_name:
            return self._by_name[prefix], address

        if channel:
            return self._by_name.get(channel), recipient
        if self._default_name:
            return self._by_name.get(self._default_name), recipient
        if len(self._by_name) == 1:
            return next(iter(self._by_name.values())), recipient
        return None, recipient

    async def send(
        self,
        recipient: str,
        message: str,
        *,
        subject: str | None = None,
        channel: str | None = None,
    ) -> bool:
        """Deliver *message* to *recipient*. Returns False if no channel matched."""
        target, address = self.route(recipient, channel)
        if target is None:
            logger.warning("No channel for recipient %s (requested=%s)", recipient, channel)
            return False
        return await target.send(address, message, subject=subject)
