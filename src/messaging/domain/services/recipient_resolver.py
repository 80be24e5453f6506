"""Recipient resolution: who a message in a conversation is delivered to."""

from typing import List, Optional

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.exceptions import NoDriverAssignedError, NoRecipientsError
from src.messaging.domain.protocols.repositories import DriverRepository, GroupRepository
from src.messaging.domain.value_objects.destination import Destination
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class RecipientResolver:
    """
    Domain service producing the ordered destinations of a message.

    - Individual conversation: the conversation's driver.
    - Group conversation: every active participant in join (id) order,
      minus the participant who sent the message when it came from one.
      Staff sends (sender_participant_id=None) reach every active participant.

    An empty group yields an empty list; that is not an error.
    """

    def __init__(self, drivers: DriverRepository, groups: GroupRepository) -> None:
        self._drivers = drivers
        self._groups = groups

    async def resolve(
        self,
        conversation: Conversation,
        sender_participant_id: Optional[int] = None,
    ) -> List[Destination]:
        if conversation.is_group:
            return await self._resolve_group(conversation, sender_participant_id)
        return [await self._resolve_driver(conversation)]

    async def _resolve_driver(self, conversation: Conversation) -> Destination:
        if conversation.driver_id is None:
            logger.error("conversation_without_driver", conversation_id=conversation.id, team_id=conversation.team_id)
            raise NoDriverAssignedError(f"Conversation {conversation.id} has no driver assigned")
        driver = await self._drivers.get(conversation.driver_id)
        if driver is None or driver.team_id != conversation.team_id:
            logger.error(
                "conversation_driver_missing",
                conversation_id=conversation.id,
                driver_id=conversation.driver_id,
            )
            raise NoDriverAssignedError(f"Driver {conversation.driver_id} of conversation {conversation.id} not found")
        return Destination.driver(driver.id, driver.phone_number, driver.name)

    async def _resolve_group(
        self,
        conversation: Conversation,
        sender_participant_id: Optional[int],
    ) -> List[Destination]:
        group = await self._groups.get(conversation.group_id)
        if group is None or group.team_id != conversation.team_id:
            logger.error("conversation_group_missing", conversation_id=conversation.id, group_id=conversation.group_id)
            raise NoRecipientsError(f"Group {conversation.group_id} of conversation {conversation.id} not found")
        participants = sorted(await self._groups.list_participants(group.id), key=lambda p: p.id)
        destinations: List[Destination] = []
        for participant in participants:
            if not participant.is_active or participant.id == sender_participant_id:
                continue
            phone = participant.phone_number
            name = participant.participant_name
            if participant.driver_id is not None:
                driver = await self._drivers.get(participant.driver_id)
                if driver is None:
                    logger.warning(
                        "participant_driver_missing",
                        participant_id=participant.id,
                        driver_id=participant.driver_id,
                    )
                    continue
                phone = driver.phone_number
                name = name or driver.name
            destinations.append(
                Destination.participant(participant.id, phone, name, driver_id=participant.driver_id)
            )
        return destinations
