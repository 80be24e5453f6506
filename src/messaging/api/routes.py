from __future__ import annotations

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import PlainTextResponse

from src.dependencies import get_interactions, get_orchestrator, get_tenant, get_webhook_service
from src.messaging.api.schemas import (
    ActorRequest,
    ConversationResponse,
    ForwardRequest,
    ForwardResponse,
    ForwardResultResponse,
    MessageResponse,
    PinRequest,
    ReactionRequest,
    ReactionResponse,
    SendMessageRequest,
    StarRequest,
    WebhookAck,
    WindowStatusResponse,
)
from src.messaging.application.services.conversation_orchestrator import ConversationOrchestrator
from src.messaging.application.services.message_interactions import MessageInteractionEngine
from src.messaging.application.services.webhook_service import WebhookService
from src.messaging.domain.value_objects.reactor import Reactor
from src.shared.exceptions import ValidationError
from src.tenancy.domain.entities.team import TenantContext

router = APIRouter(prefix="/api/v1", tags=["messaging"])


# ─────────────────────────────── Webhook ────────────────────────────────

@router.get("/webhooks/whatsapp", response_class=PlainTextResponse, tags=["webhook"])
async def whatsapp_verify(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    svc: WebhookService = Depends(get_webhook_service),
):
    return svc.verify_subscription(mode, token, challenge)


@router.post("/webhooks/whatsapp", response_model=WebhookAck, tags=["webhook"])
async def whatsapp_inbound(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    svc: WebhookService = Depends(get_webhook_service),
):
    raw = await request.body()
    svc.verify_signature(raw, x_hub_signature_256)
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Webhook body is not valid JSON", code="invalid_request", status_code=400) from exc
    result = await svc.process_webhook(payload)
    return WebhookAck(
        messages=result.messages,
        reactions=result.reactions,
        statuses=result.statuses,
        ignored=result.ignored,
    )


# ───────────────────────────── Conversations ────────────────────────────

@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send a message into a conversation",
)
async def send_message(
    conversation_id: int,
    body: SendMessageRequest,
    tenant: TenantContext = Depends(get_tenant),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    message = await orchestrator.send(tenant, body.to_command(conversation_id))
    return MessageResponse.model_validate(message, from_attributes=True)


@router.get("/conversations/{conversation_id}/window", response_model=WindowStatusResponse)
async def window_status(
    conversation_id: int,
    tenant: TenantContext = Depends(get_tenant),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    return WindowStatusResponse.from_status(await orchestrator.window_status(tenant, conversation_id))


@router.post("/conversations/{conversation_id}/archive", response_model=ConversationResponse)
async def archive_conversation(
    conversation_id: int,
    body: ActorRequest,
    tenant: TenantContext = Depends(get_tenant),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    conversation = await orchestrator.archive(tenant, conversation_id, body.user_id)
    return ConversationResponse.model_validate(conversation, from_attributes=True)


@router.post("/conversations/{conversation_id}/unarchive", response_model=ConversationResponse)
async def unarchive_conversation(
    conversation_id: int,
    tenant: TenantContext = Depends(get_tenant),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    conversation = await orchestrator.unarchive(tenant, conversation_id)
    return ConversationResponse.model_validate(conversation, from_attributes=True)


@router.post("/conversations/{conversation_id}/assign", response_model=ConversationResponse)
async def assign_conversation(
    conversation_id: int,
    body: ActorRequest,
    tenant: TenantContext = Depends(get_tenant),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    conversation = await orchestrator.assign(tenant, conversation_id, body.user_id)
    return ConversationResponse.model_validate(conversation, from_attributes=True)


# ─────────────────────────────── Messages ───────────────────────────────

@router.post("/messages/{message_id}/reactions", response_model=ReactionResponse)
async def react(
    message_id: int,
    body: ReactionRequest,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    reaction = await interactions.react(tenant, message_id, Reactor.staff(body.user_id), body.emoji)
    return ReactionResponse.from_entity(reaction)


@router.get("/messages/{message_id}/reactions", response_model=List[ReactionResponse])
async def list_reactions(
    message_id: int,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    return [ReactionResponse.from_entity(r) for r in await interactions.list_reactions(tenant, message_id)]


@router.delete("/messages/{message_id}/reactions/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unreact(
    message_id: int,
    user_id: str,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    await interactions.remove_reaction(tenant, message_id, Reactor.staff(user_id))


@router.post("/messages/{message_id}/pin", response_model=MessageResponse)
async def pin_message(
    message_id: int,
    body: PinRequest,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    message = await interactions.pin(tenant, message_id, body.is_pinned)
    return MessageResponse.model_validate(message, from_attributes=True)


@router.post("/messages/{message_id}/star", response_model=MessageResponse)
async def star_message(
    message_id: int,
    body: StarRequest,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    message = await interactions.star(tenant, message_id, body.is_starred)
    return MessageResponse.model_validate(message, from_attributes=True)


@router.post("/messages/{message_id}/delete", response_model=MessageResponse)
async def delete_message(
    message_id: int,
    body: ActorRequest,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    message = await interactions.soft_delete(tenant, message_id, body.user_id)
    return MessageResponse.model_validate(message, from_attributes=True)


@router.post("/messages/{message_id}/forward", response_model=ForwardResponse)
async def forward_message(
    message_id: int,
    body: ForwardRequest,
    tenant: TenantContext = Depends(get_tenant),
    interactions: MessageInteractionEngine = Depends(get_interactions),
):
    outcomes = await interactions.forward(
        tenant,
        message_id,
        body.target_conversation_ids,
        sender_user_id=body.sender_user_id,
        override_content=body.override_content,
        sender_name=body.sender_name,
    )
    return ForwardResponse(results=[ForwardResultResponse.from_outcome(o) for o in outcomes])


@router.post("/messages/{message_id}/abandon", response_model=MessageResponse)
async def abandon_message(
    message_id: int,
    body: ActorRequest,
    tenant: TenantContext = Depends(get_tenant),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    message = await orchestrator.abandon(tenant, message_id, body.user_id)
    return MessageResponse.model_validate(message, from_attributes=True)
