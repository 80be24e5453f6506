"""External service interfaces."""

from typing import Protocol

from src.messaging.domain.exceptions import ProviderError
from src.messaging.domain.value_objects.destination import Destination
from src.messaging.domain.value_objects.payload import OutboundPayload
from src.tenancy.domain.entities.team import ProviderCredentials


class ProviderClient(Protocol):
    """Transport to the messaging provider."""

    async def attempt_send(
        self,
        destination: Destination,
        payload: OutboundPayload,
        credentials: ProviderCredentials,
    ) -> str:
        """
        Send one message to one destination.

        Returns:
            Provider message id

        Raises:
            ProviderError: rejection, throttling, timeout or transport failure
        """
        ...


class ErrorClassifier(Protocol):
    """Provider error → retryable | permanent."""

    def is_retryable(self, error: ProviderError) -> bool:
        ...
