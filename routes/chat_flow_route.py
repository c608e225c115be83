"""FastAPI routes for the conversational chat flow."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.chat_flow_controller import (
	clear_session_history,
	clear_session_reference_images,
	get_session_state,
	process_chat_message,
)
from utils.errors import AppError, GENERIC_ERROR_MESSAGE

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat-flow", tags=["chat-flow"])


class HistoryEntry(BaseModel):
	role: str
	content: str


class ChatFlowPayload(BaseModel):
	message: Optional[str] = None
	referenceImageUrl: Optional[str] = None
	webSearchOptions: Optional[Dict[str, Any]] = None
	fileSearchOptions: Optional[Dict[str, Any]] = None
	conversationHistory: Optional[List[HistoryEntry]] = None
	userId: Optional[str] = None
	chatId: Optional[str] = None
	sessionId: Optional[str] = None
	clearHistory: bool = False


@router.post("")
async def chat_flow_route(request: Request, payload: ChatFlowPayload):
	history = [entry.model_dump() for entry in payload.conversationHistory] if payload.conversationHistory else None
	try:
		return await process_chat_message(
			request,
			payload.message,
			reference_image_url=payload.referenceImageUrl,
			web_search_options=payload.webSearchOptions,
			file_search_options=payload.fileSearchOptions,
			history=history,
			user_id=payload.userId,
			chat_id=payload.chatId,
			session_id=payload.sessionId,
			clear_history=payload.clearHistory,
		)
	except (HTTPException, AppError):
		raise
	except Exception as exc:
		LOGGER.exception("Chat flow request failed")
		raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE) from exc


@router.get("")
async def chat_flow_state_route(request: Request, sessionId: Optional[str] = None, chatId: Optional[str] = None):
	return await get_session_state(request, chatId, sessionId)


@router.delete("")
async def chat_flow_clear_route(request: Request, sessionId: Optional[str] = None, chatId: Optional[str] = None):
	return await clear_session_history(request, chatId, sessionId)


@router.delete("/reference-images")
async def chat_flow_clear_images_route(
	request: Request, sessionId: Optional[str] = None, chatId: Optional[str] = None
):
	return await clear_session_reference_images(request, chatId, sessionId)
