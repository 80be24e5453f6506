from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from src.messaging.domain.exceptions import ProviderError, TransientProviderError
from src.messaging.domain.value_objects.destination import Destination
from src.messaging.domain.value_objects.message_status import MessageType
from src.messaging.domain.value_objects.payload import OutboundPayload
from src.shared.infrastructure.observability.logger import get_logger
from src.tenancy.domain.entities.team import ProviderCredentials

logger = get_logger(__name__)

_CAPTIONED = {MessageType.IMAGE, MessageType.VIDEO, MessageType.DOCUMENT}


def build_outbound_payload(*, to: str, payload: OutboundPayload) -> Dict[str, Any]:
    """Cloud API body for one recipient."""
    body: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": payload.message_type.value,
    }
    kind = payload.message_type

    if kind == MessageType.TEXT:
        body["text"] = {"body": payload.text, "preview_url": bool(payload.extra.get("preview_url", False))}
    elif kind == MessageType.TEMPLATE:
        template: Dict[str, Any] = {
            "name": payload.template_name,
            "language": {"code": payload.template_language or "en"},
        }
        if payload.template_parameters:
            template["components"] = [{
                "type": "body",
                "parameters": [_template_parameter(k, v) for k, v in payload.template_parameters.items()],
            }]
        body["template"] = template
    elif kind.is_media:
        media: Dict[str, Any] = {}
        if payload.extra.get("link"):
            media["link"] = payload.extra["link"]
        elif payload.extra.get("media_id"):
            media["id"] = payload.extra["media_id"]
        if kind in _CAPTIONED and payload.text:
            media["caption"] = payload.text
        if kind == MessageType.DOCUMENT and payload.extra.get("filename"):
            media["filename"] = payload.extra["filename"]
        body[kind.value] = media
    elif kind == MessageType.LOCATION:
        body["location"] = {
            k: payload.extra[k] for k in ("latitude", "longitude", "name", "address") if k in payload.extra
        }
    elif kind == MessageType.CONTACTS:
        body["contacts"] = list(payload.extra.get("contacts", []))

    if payload.reply_to_provider_message_id:
        body["context"] = {"message_id": payload.reply_to_provider_message_id}
    return body


def _template_parameter(key: str, value: str) -> Dict[str, Any]:
    # numeric keys are positional ({{1}}), anything else is a named parameter
    if key.isdigit():
        return {"type": "text", "text": value}
    return {"type": "text", "parameter_name": key, "text": value}


class WhatsAppCloudClient:
    """
    Client for the WhatsApp Cloud API (Meta Graph).

    - One POST per destination; the caller fans out group sends.
    - Credentials are passed per call, so one client serves every team.
    - Keep tokens out of logs.

    Non-2xx answers raise ProviderError carrying the Graph error code and
    HTTP status; whether that is retried is the classifier's call. Timeouts
    and transport failures raise TransientProviderError.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://graph.facebook.com",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def attempt_send(
        self,
        destination: Destination,
        payload: OutboundPayload,
        credentials: ProviderCredentials,
    ) -> str:
        url = f"{self._base}/{credentials.api_version}/{credentials.phone_number_id}/messages"
        headers = {
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json",
        }
        body = build_outbound_payload(to=destination.phone, payload=payload)

        try:
            response = await self._client.post(url, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            logger.warning("whatsapp_timeout", destination=str(destination))
            raise TransientProviderError("timeout", "Request timeout") from exc
        except httpx.TransportError as exc:
            logger.warning("whatsapp_transport_error", destination=str(destination), error=str(exc))
            raise TransientProviderError("transport_error", str(exc) or exc.__class__.__name__) from exc

        if response.is_success:
            try:
                return str(response.json()["messages"][0]["id"])
            except (ValueError, KeyError, IndexError, TypeError) as exc:
                raise ProviderError("invalid_response", "Response carried no message id", response.status_code) from exc

        error = self._error_body(response)
        logger.info(
            "whatsapp_rejected",
            destination=str(destination),
            http_status=response.status_code,
            error_code=error.get("code"),
        )
        raise ProviderError(
            str(error.get("code", response.status_code)),
            error.get("message", "Unknown error"),
            http_status=response.status_code,
            error_data=error,
        )

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        error = data.get("error") if isinstance(data, dict) else None
        return error if isinstance(error, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()
