"""Chat flow helpers: route one message through the caller's orchestrator session."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from fastapi import Request

from dal.chat_message_dal import ChatMessageDAL
from models.envelope_models import Envelope, ImageEnvelope
from services.image_store import ImageStore
from services.orchestrator.session_store import ConversationSessionStore, session_key
from utils.app_state import get_optional, get_service
from utils.errors import AppError, ValidationError

LOGGER = logging.getLogger(__name__)


def _now() -> str:
	return datetime.now(timezone.utc).isoformat()


def _store(request: Request) -> ConversationSessionStore:
	return get_service(request, "session_store", "Chat flow")


async def _load_history(dal: Optional[ChatMessageDAL], user_id: Optional[str], chat_id: Optional[str]) -> List[Dict[str, str]]:
	"""Return stored chat history; storage problems degrade to no history."""
	if dal is None or not user_id or not chat_id:
		return []
	try:
		return await dal.recent_history(user_id, chat_id)
	except AppError as exc:
		LOGGER.warning("Could not load chat history for chat %s: %s", chat_id, exc)
	except Exception:
		LOGGER.exception("Could not load chat history for chat %s", chat_id)
	return []


async def _persist_turns(
	dal: Optional[ChatMessageDAL],
	image_store: Optional[ImageStore],
	user_id: Optional[str],
	chat_id: Optional[str],
	message: str,
	envelope: Envelope,
) -> Optional[str]:
	"""Save the user/assistant pair; returns the stored image URL when one was uploaded."""
	if dal is None or not user_id or not chat_id:
		return None
	stored_url = None
	try:
		if isinstance(envelope, ImageEnvelope) and image_store is not None:
			stored = await image_store.save_generated_image(user_id, chat_id, envelope.image_url)
			stored_url = stored.image_url
		await dal.touch_chat(user_id, chat_id, message)
		await dal.save_message(user_id, chat_id, "user", message)
		await dal.save_message(user_id, chat_id, "assistant", envelope.content, image_url=stored_url)
	except Exception:
		LOGGER.exception("Could not persist messages for chat %s", chat_id)
	return stored_url


async def process_chat_message(
	request: Request,
	message: Optional[str],
	*,
	reference_image_url: Optional[str] = None,
	web_search_options: Optional[Mapping[str, Any]] = None,
	file_search_options: Optional[Mapping[str, Any]] = None,
	history: Optional[List[Dict[str, str]]] = None,
	user_id: Optional[str] = None,
	chat_id: Optional[str] = None,
	session_id: Optional[str] = None,
	clear_history: bool = False,
) -> Dict[str, Any]:
	"""Run one message through the session's orchestrator and return the response body."""
	if not isinstance(message, str) or not message.strip():
		raise ValidationError("Message is required")

	dal = get_optional(request, "chat_messages")
	image_store = get_optional(request, "image_store")
	session = _store(request).get_or_create(session_key(chat_id, session_id))

	async with session.lock:
		if clear_history:
			session.orchestrator.clear_history()
		stored_history = history if history is not None else await _load_history(dal, user_id, chat_id)
		envelope = await session.orchestrator.process_message(
			message,
			reference_image=reference_image_url,
			web_search_options=web_search_options,
			file_search_options=file_search_options,
			history=stored_history,
		)

	stored_url = await _persist_turns(dal, image_store, user_id, chat_id, message.strip(), envelope)
	body: Dict[str, Any] = {"success": True, **envelope.to_dict(), "timestamp": _now()}
	if stored_url:
		body["storedImageUrl"] = stored_url
	return body


async def get_session_state(request: Request, chat_id: Optional[str], session_id: Optional[str]) -> Dict[str, Any]:
	"""Return the session's history and reference images (empty for unknown sessions)."""
	session = _store(request).get(session_key(chat_id, session_id))
	history = session.orchestrator.get_history() if session else []
	images = session.orchestrator.get_reference_images() if session else []
	return {
		"success": True,
		"history": [turn.to_dict() for turn in history],
		"referenceImages": [image.to_dict() for image in images],
		"timestamp": _now(),
	}


async def clear_session_history(request: Request, chat_id: Optional[str], session_id: Optional[str]) -> Dict[str, Any]:
	session = _store(request).get(session_key(chat_id, session_id))
	if session is not None:
		async with session.lock:
			session.orchestrator.clear_history()
	return {"success": True, "message": "Conversation history cleared"}


async def clear_session_reference_images(
	request: Request, chat_id: Optional[str], session_id: Optional[str]
) -> Dict[str, Any]:
	session = _store(request).get(session_key(chat_id, session_id))
	if session is not None:
		async with session.lock:
			session.orchestrator.clear_reference_images()
	return {"success": True, "message": "Reference images cleared"}
