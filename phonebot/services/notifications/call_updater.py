"""Out-of-band call updates delivered to the call controller."""
import logging
from typing import Optional

import httpx

from phonebot.core.config import settings
from phonebot.services.telephony.events import UpdateFunction

logger = logging.getLogger(__name__)


class CallUpdateError(Exception):
    """The telephony platform rejected a call update."""


class CallUpdater:
    """
    Asks the telephony platform to re-invoke the controller for a live call.

    The platform delivers the arguments to the controller as a
    CALL_UPDATE_REQUESTED event for the same transaction.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        application_id: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.telephony_api_url).rstrip("/")
        self.application_id = application_id if application_id is not None else settings.sip_media_application_id
        self.api_key = api_key if api_key is not None else settings.telephony_api_key
        self.transport = transport

    async def update_call(
        self, transaction_id: str, function: UpdateFunction, text: Optional[str] = None
    ) -> None:
        """
        Send one update for a call.

        Raises:
            ValueError: if a Response update has no text or a Thinking update has text
            CallUpdateError: if the platform request fails
        """
        function = UpdateFunction(function)
        if function == UpdateFunction.RESPONSE and not text:
            raise ValueError("Response updates must carry text")
        if function == UpdateFunction.THINKING and text:
            raise ValueError("Thinking updates carry no text")

        arguments = {"Function": function.value}
        if text:
            arguments["Text"] = text

        url = f"/sip-media-applications/{self.application_id}/calls/{transaction_id}"
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        logger.info(f"[CALL UPDATE] {function.value} - TransactionId: {transaction_id}")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=settings.http_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(url, json={"Arguments": arguments})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"[CALL UPDATE] {function.value} failed - TransactionId: {transaction_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
            raise CallUpdateError(f"{function.value} update failed: {str(e)}") from e

    async def thinking(self, transaction_id: str) -> None:
        await self.update_call(transaction_id, UpdateFunction.THINKING)

    async def response(self, transaction_id: str, text: str) -> None:
        await self.update_call(transaction_id, UpdateFunction.RESPONSE, text)
