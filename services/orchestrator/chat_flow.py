"""Conversation orchestrator: classify a message, dispatch it, assemble the envelope.

One `process_message` call runs strictly in sequence: validate, classify, then
either the chat/search path (one Responses API call) or the image path
(mandatory prompt enhancement, then one image call). History and the
reference-image set are only mutated after the envelope is complete, so a
failure anywhere leaves both exactly as they were.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from models.conversation_models import ConversationTurn, ReferenceImage, RoutingDecision
from models.envelope_models import Envelope, ImageEnvelope, TextEnvelope
from services.orchestrator.classifier import classify_message, search_flags
from services.orchestrator.history import ConversationHistory, ReferenceImageSet
from services.orchestrator.prompts import (
    chat_response_format,
    chat_system_instructions,
    image_reply,
    lifestyle_context,
)
from utils.errors import ProviderNotConfiguredError, UpstreamProviderError, ValidationError

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
DEFAULT_REFERENCE_IMAGE_LIMIT = 5
HISTORY_WINDOW = 10


def _search_context_size(options: Optional[Mapping[str, Any]]) -> str:
    size = (options or {}).get("searchContextSize") or (options or {}).get("search_context_size")
    return size if size in ("low", "medium", "high") else "medium"


def _max_results(options: Optional[Mapping[str, Any]]) -> Optional[int]:
    value = (options or {}).get("maxResults") or (options or {}).get("max_num_results")
    return int(value) if isinstance(value, (int, float)) and value > 0 else None


class ChatFlowOrchestrator:
    """Per-session dispatcher over the text, enhancement, and image providers."""

    def __init__(
        self,
        text_provider: Any,
        prompt_enhancer: Any,
        image_provider: Any,
        *,
        vector_store_ids: Optional[Sequence[str]] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        reference_image_limit: int = DEFAULT_REFERENCE_IMAGE_LIMIT,
    ) -> None:
        self.text_provider = text_provider
        self.prompt_enhancer = prompt_enhancer
        self.image_provider = image_provider
        self.vector_store_ids = list(vector_store_ids or [])
        self._history = ConversationHistory(history_limit)
        self._reference_images = ReferenceImageSet(reference_image_limit)

    async def process_message(
        self,
        message: Optional[str],
        reference_image: Optional[str] = None,
        web_search_options: Optional[Mapping[str, Any]] = None,
        file_search_options: Optional[Mapping[str, Any]] = None,
        history: Optional[Sequence[Mapping[str, str]]] = None,
    ) -> Envelope:
        """Handle one user message and return exactly one envelope.

        A non-empty `history` replaces the session's own turns as the model's
        context and, on success, as the stored history.

        Raises:
            ValidationError: If `message` is missing or blank.
            UpstreamProviderError: If any required provider call fails.
        """
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Message is required")
        message = message.strip()
        caller_turns = self._caller_history(history)

        decision = classify_message(
            message, web_search_options=web_search_options, file_search_options=file_search_options
        )
        LOGGER.info("Routing message to %s (rule=%s)", decision.route.value, decision.matched_rule)

        if decision.is_image:
            envelope, new_image = await self._handle_image(message, decision, reference_image)
        else:
            envelope = await self._handle_text(message, decision, web_search_options, file_search_options, caller_turns)
            new_image = None

        if new_image is not None:
            self._reference_images.append(new_image)
        if caller_turns:
            self._history.clear()
            self._history.extend(ConversationTurn(role=turn["role"], content=turn["content"]) for turn in caller_turns)
        self._history.add("user", message)
        self._history.add("assistant", envelope.content)
        return envelope

    async def _handle_text(
        self,
        message: str,
        decision: RoutingDecision,
        web_search_options: Optional[Mapping[str, Any]],
        file_search_options: Optional[Mapping[str, Any]],
        caller_turns: List[Dict[str, str]],
    ) -> TextEnvelope:
        web_enabled, file_enabled = search_flags(web_search_options, file_search_options)
        tools = self._search_tools(web_enabled, web_search_options, file_enabled, file_search_options)
        include = ["file_search_call.results"] if file_enabled else None

        input_items: List[Dict[str, Any]] = [
            {"role": "developer", "content": chat_system_instructions(web_enabled, file_enabled)}
        ]
        input_items.extend(caller_turns or self._history.as_messages(limit=HISTORY_WINDOW))
        input_items.append({"role": "user", "content": message})

        result = await self.text_provider.respond(
            input_items, tools=tools or None, include=include, text_format=chat_response_format()
        )
        structured = dict(result.structured_data) if result.structured_data else None
        if structured is not None and result.sources:
            structured["sources"] = result.sources
        LOGGER.info(
            "%s response: %d web search call(s), %d file search call(s)",
            decision.route.value,
            len(result.web_search_calls),
            len(result.file_search_calls),
        )
        return TextEnvelope(
            content=result.content,
            structured_data=structured,
            function_calls=tuple(result.function_calls),
            web_search_calls=tuple(result.web_search_calls),
            file_search_calls=tuple(result.file_search_calls),
            usage=result.usage,
        )

    def _search_tools(
        self,
        web_enabled: bool,
        web_search_options: Optional[Mapping[str, Any]],
        file_enabled: bool,
        file_search_options: Optional[Mapping[str, Any]],
    ) -> List[Dict[str, Any]]:
        tools: List[Dict[str, Any]] = []
        if web_enabled:
            tool: Dict[str, Any] = {
                "type": "web_search_preview",
                "search_context_size": _search_context_size(web_search_options),
            }
            location = (web_search_options or {}).get("userLocation")
            if isinstance(location, Mapping):
                tool["user_location"] = {"type": "approximate", **dict(location)}
            tools.append(tool)
        if file_enabled:
            vector_store_ids = list((file_search_options or {}).get("vectorStoreIds") or self.vector_store_ids)
            if not vector_store_ids:
                raise UpstreamProviderError("openai", "file search unavailable: no vector store configured")
            tool = {"type": "file_search", "vector_store_ids": vector_store_ids}
            max_results = _max_results(file_search_options)
            if max_results:
                tool["max_num_results"] = max_results
            tools.append(tool)
        return tools

    @staticmethod
    def _caller_history(history: Optional[Sequence[Mapping[str, str]]]) -> List[Dict[str, str]]:
        messages = []
        for entry in history or []:
            role = entry.get("role")
            content = entry.get("content")
            if role in ("user", "assistant") and isinstance(content, str) and content.strip():
                messages.append({"role": role, "content": content})
        return messages

    async def _handle_image(
        self,
        message: str,
        decision: RoutingDecision,
        reference_image: Optional[str],
    ):
        if self.prompt_enhancer is None:
            raise ProviderNotConfiguredError("Anthropic")
        subject = decision.image_prompt or message
        context = lifestyle_context(message) if decision.lifestyle else None
        enhanced_prompt = await self.prompt_enhancer.enhance(subject, context=context)

        effective_reference = self._reference_images.effective(reference_image)
        if effective_reference:
            LOGGER.info("Generating image from reference image")
            result = await self.image_provider.edit(enhanced_prompt, effective_reference)
        else:
            result = await self.image_provider.generate(enhanced_prompt)

        structured = result.structured_data()
        structured["enhanced_prompt"] = enhanced_prompt
        structured["lifestyle"] = decision.lifestyle
        image_url = result.data_url
        envelope = ImageEnvelope(
            content=image_reply(subject, edited=bool(effective_reference)),
            image_url=image_url,
            enhanced_prompt=enhanced_prompt,
            structured_data=structured,
        )
        return envelope, ReferenceImage(url=image_url, description=enhanced_prompt)

    def get_history(self) -> List[ConversationTurn]:
        return self._history.snapshot()

    def get_reference_images(self) -> List[ReferenceImage]:
        return self._reference_images.snapshot()

    def clear_history(self) -> None:
        self._history.clear()

    def clear_reference_images(self) -> None:
        self._reference_images.clear()
