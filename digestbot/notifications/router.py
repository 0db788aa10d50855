"""
Notification groups and routing of digests to them.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Set

from digestbot.config import NotificationGroupConfig
from digestbot.core.article import DigestResult
from digestbot.exceptions import ConfigurationError, NotificationError
from digestbot.formatters.digest import format_digest
from digestbot.notifications.channels import Channel, EmailChannel, TelegramChannel
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)

UNMATCHED_POLICIES = ("drop", "broadcast")


class NotificationGroup:
    """
    One subscriber group: a set of channels and the source groups it follows.
    """
    def __init__(self, group_id: str, name: str, channels: List[Channel], enabled: bool = True,
                 source_groups: Optional[List[str]] = None):
        self.id = group_id
        self.name = name
        self.channels = list(channels)
        self.enabled = enabled
        self.source_groups = set(source_groups or [])

    @classmethod
    def from_config(cls, config: NotificationGroupConfig, http: HttpClient) -> "NotificationGroup":
        channels: List[Channel] = []
        if config.telegram:
            channels.append(TelegramChannel(config.telegram, http))
        if config.email:
            channels.append(EmailChannel(config.email))
        return cls(config.id, config.name, channels, enabled=config.enabled,
                   source_groups=config.source_groups)

    def subscribes_to(self, source_group_id: Optional[str]) -> bool:
        return source_group_id in self.source_groups

    async def send(self, message: str) -> bool:
        """
        Deliver a message to every configured channel concurrently.

        Args:
            message: Message text

        Returns:
            True if delivery was attempted, False if the group is disabled or has no usable channel

        Raises:
            NotificationError: If at least one channel failed; the others were still attempted
        """
        if not self.enabled:
            logger.warning(f"Notifications are disabled for group {self.id}")
            return False

        channels = [channel for channel in self.channels if channel.is_configured()]
        if not channels:
            logger.warning(f"No notification channels configured for group {self.id}")
            return False

        outcomes = await asyncio.gather(*(channel.send(message) for channel in channels),
                                        return_exceptions=True)
        failures = [(channel.name, outcome) for channel, outcome in zip(channels, outcomes)
                    if isinstance(outcome, Exception)]
        for channel_name, error in failures:
            logger.error(f"Channel {channel_name} failed for group {self.id}: {error}")
        if failures:
            raise NotificationError(
                f"{len(failures)} of {len(channels)} channel(s) failed for group {self.id}"
            )

        logger.info(f"Notification sent successfully for group {self.id}")
        return True

    async def send_results(self, results: List[DigestResult]) -> bool:
        """Format the digests into one message and send it."""
        if not results:
            logger.warning(f"No results to send for group {self.id}")
            return False
        return await self.send(format_digest(results))


class NotificationRouter:
    """
    Routes digests to notification groups by source-group subscription.

    A failing group is logged and never prevents delivery to the others.
    Every send method returns the ids of the groups a delivery was
    attempted for, failed attempts included.
    """
    def __init__(self, groups: List[NotificationGroup], unmatched: str = "drop"):
        if unmatched not in UNMATCHED_POLICIES:
            raise ConfigurationError(
                f"notifications.unmatched must be one of {', '.join(UNMATCHED_POLICIES)}, got {unmatched!r}"
            )
        self._groups: Dict[str, NotificationGroup] = {group.id: group for group in groups}
        self.unmatched = unmatched
        logger.info(f"Initialized {len(self._groups)} notification groups")

    @classmethod
    def from_config(cls, configs: List[NotificationGroupConfig], http: HttpClient,
                    unmatched: str = "drop") -> "NotificationRouter":
        return cls([NotificationGroup.from_config(config, http) for config in configs], unmatched=unmatched)

    def groups(self) -> List[NotificationGroup]:
        return list(self._groups.values())

    def get_group(self, group_id: str) -> Optional[NotificationGroup]:
        return self._groups.get(group_id)

    def is_enabled(self) -> bool:
        return any(group.enabled for group in self._groups.values())

    def subscribers(self, source_group_id: Optional[str]) -> List[NotificationGroup]:
        """Enabled groups subscribed to the source group."""
        return [group for group in self._groups.values()
                if group.enabled and group.subscribes_to(source_group_id)]

    async def _deliver(self, group: NotificationGroup, results: List[DigestResult]) -> Optional[str]:
        try:
            attempted = await group.send_results(results)
        except Exception as e:
            logger.error(f"Failed to send notification for group {group.id}: {e}")
            return group.id
        return group.id if attempted else None

    async def _deliver_all(self, groups: List[NotificationGroup], results: List[DigestResult]) -> List[str]:
        outcomes = await asyncio.gather(*(self._deliver(group, results) for group in groups))
        return [group_id for group_id in outcomes if group_id is not None]

    async def send_results(self, results: List[DigestResult]) -> List[str]:
        """
        Send digests to every enabled group.

        Args:
            results: Digests to deliver

        Returns:
            Ids of the groups a delivery was attempted for
        """
        if not results:
            logger.warning("No results to send")
            return []
        groups = [group for group in self._groups.values() if group.enabled]
        if not groups:
            logger.warning("No enabled notification groups found")
            return []
        attempted = await self._deliver_all(groups, results)
        logger.info(f"Notifications dispatched to {len(attempted)} of {len(groups)} enabled groups")
        return attempted

    async def send_results_to_group(self, group_id: str, results: List[DigestResult]) -> List[str]:
        """
        Send digests to one group.

        Args:
            group_id: Notification group identifier
            results: Digests to deliver

        Returns:
            [group_id] if a delivery was attempted, else an empty list
        """
        group = self._groups.get(group_id)
        if group is None:
            logger.error(f"Notification group {group_id} not found")
            return []
        if not group.enabled:
            logger.warning(f"Notification group {group_id} is disabled")
            return []
        return await self._deliver_all([group], results)

    async def send_results_to_matching_groups(self, source_group_id: str,
                                              results: List[DigestResult]) -> List[str]:
        """
        Send digests to every enabled group subscribed to a source group.

        Args:
            source_group_id: Source group the digests were produced under
            results: Digests to deliver

        Returns:
            Ids of the groups a delivery was attempted for
        """
        matching = []
        for group in self._groups.values():
            if group.enabled and group.subscribes_to(source_group_id):
                logger.info(f"Notification group {group.id} matches source group {source_group_id}")
                matching.append(group)
            else:
                logger.info(f"Notification group {group.id} does not receive source group {source_group_id}")

        if not matching:
            logger.warning(f"No notification groups subscribed to source group {source_group_id}")
            return []
        return await self._deliver_all(matching, results)

    async def dispatch(self, results: List[DigestResult], allow_broadcast: bool = False) -> Set[str]:
        """
        Route digests by the source group each was produced under.

        Digests of a source group without subscribers are broadcast to all
        enabled groups when ``allow_broadcast`` is set or the router's
        unmatched policy is "broadcast"; otherwise they are dropped with a warning.

        Args:
            results: Digests to deliver
            allow_broadcast: Broadcast unmatched digests regardless of the policy

        Returns:
            URLs of the digests a delivery was attempted for
        """
        by_source_group: Dict[Optional[str], List[DigestResult]] = {}
        for result in results:
            by_source_group.setdefault(result.source_group, []).append(result)

        dispatched: Set[str] = set()
        for source_group_id, batch in by_source_group.items():
            if self.subscribers(source_group_id):
                attempted = await self.send_results_to_matching_groups(source_group_id, batch)
            elif allow_broadcast or self.unmatched == "broadcast":
                logger.info(
                    f"No subscribers for source group {source_group_id}, broadcasting {len(batch)} digests"
                )
                attempted = await self.send_results(batch)
            else:
                logger.warning(
                    f"No subscribers for source group {source_group_id}, dropping {len(batch)} digests"
                )
                attempted = []

            if attempted:
                dispatched.update(result.url for result in batch)
        return dispatched
