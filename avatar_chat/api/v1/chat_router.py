"""Chat API router for avatar conversations."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from avatar_chat.core.config import settings
from avatar_chat.core.limiter import limiter
from avatar_chat.dependencies import get_chat_service, get_current_user
from avatar_chat.schemas.chat_schema import ChatRequest, ChatTurnResponse
from avatar_chat.schemas.credit_schema import CostEstimate, CostEstimateRequest
from avatar_chat.schemas.response_schema import (
    ApiResponse,
    error_responses,
    success_response,
)
from avatar_chat.services.chat_service import ChatService
from avatar_chat.services.cost_estimator import estimate_cost

router = APIRouter(
    prefix="/api/v1/chat",
    tags=["chat"],
    dependencies=[Depends(get_current_user)],
)

ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


@router.post(
    "",
    response_model=ApiResponse[ChatTurnResponse],
    responses=error_responses(402, 403, 404, 429, 502),
)
@limiter.limit(settings.rate_limit.chat)
async def send_message(
    request: Request,
    body: ChatRequest,
    chat_service: ChatServiceDep,
) -> dict:
    """Send a message to an avatar and return its reply."""
    result = await chat_service.send_message(body)
    return success_response(result)


@router.post("/cost-estimate", response_model=ApiResponse[CostEstimate])
async def cost_estimate(body: CostEstimateRequest) -> dict:
    """Preview the credit cost of a message. Never charges."""
    estimate = estimate_cost(body.message_length, body.has_images, body.context_size)
    return success_response(estimate)
