"""
Tests for ChatFlowOrchestrator: routing, envelopes, bounded state, failure atomicity.
"""

import asyncio

import pytest

from models.envelope_models import ImageEnvelope, TextEnvelope, WebSearchCall
from services.orchestrator.chat_flow import ChatFlowOrchestrator
from tests.fakes import make_enhancer, make_image_provider, make_text_provider
from utils.errors import UpstreamProviderError, ValidationError


def _orchestrator(**kwargs):
    text = kwargs.pop("text_provider", None) or make_text_provider()
    enhancer = kwargs.pop("prompt_enhancer", None) or make_enhancer()
    images = kwargs.pop("image_provider", None) or make_image_provider()
    return ChatFlowOrchestrator(text, enhancer, images, **kwargs)


class TestChatPath:
    """Messages without image triggers go to the text provider."""

    @pytest.mark.parametrize(
        "message",
        ["What's the capital of France?", "Tell me a joke about cats", "hello", "How do I cook rice?"],
    )
    def test_plain_messages_return_text(self, message):
        orch = _orchestrator()
        envelope = asyncio.run(orch.process_message(message))
        assert isinstance(envelope, TextEnvelope)
        assert envelope.type == "text"
        assert envelope.content == "Hello there!"
        orch.prompt_enhancer.enhance.assert_not_called()
        orch.image_provider.generate.assert_not_called()

    def test_exactly_one_primary_call(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("What time zone is Tokyo in?"))
        assert orch.text_provider.respond.await_count == 1

    def test_caller_history_is_prepended(self):
        orch = _orchestrator()
        history = [
            {"role": "user", "content": "My name is Ada."},
            {"role": "assistant", "content": "Nice to meet you, Ada."},
        ]
        asyncio.run(orch.process_message("What is my name?", history=history))
        input_items = orch.text_provider.respond.await_args.args[0]
        assert input_items[0]["role"] == "developer"
        assert input_items[1] == {"role": "user", "content": "My name is Ada."}
        assert input_items[-1] == {"role": "user", "content": "What is my name?"}

    def test_caller_history_replaces_session_turns(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("My name is Ada."))
        history = [turn.as_message() for turn in orch.get_history()]
        asyncio.run(orch.process_message("What is my name?", history=history))
        contents = [item["content"] for item in orch.text_provider.respond.await_args.args[0]]
        assert contents.count("My name is Ada.") == 1
        assert contents.count("Hello there!") == 1
        assert [turn.content for turn in orch.get_history()] == [
            "My name is Ada.",
            "Hello there!",
            "What is my name?",
            "Hello there!",
        ]

    def test_structured_response_format_is_requested(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("Summarise the news"))
        text_format = orch.text_provider.respond.await_args.kwargs["text_format"]
        assert text_format["type"] == "json_schema"
        assert text_format["strict"] is True


class TestImagePath:
    """Image triggers run enhancement first, then the image provider."""

    @pytest.mark.parametrize(
        "message",
        ["generate a picture of a dog", "Draw a castle", "show me a sunset", "I need a product shot"],
    )
    def test_image_messages_return_image_envelope(self, message):
        orch = _orchestrator()
        envelope = asyncio.run(orch.process_message(message))
        assert isinstance(envelope, ImageEnvelope)
        assert envelope.type == "image"
        assert envelope.enhanced_prompt
        assert envelope.image_url.startswith("data:image/png;base64,")
        orch.text_provider.respond.assert_not_called()

    def test_enhanced_prompt_feeds_generation(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("generate an image of a red fox"))
        orch.prompt_enhancer.enhance.assert_awaited_once()
        assert orch.prompt_enhancer.enhance.await_args.args[0] == "a red fox"
        generated_prompt = orch.image_provider.generate.await_args.args[0]
        assert generated_prompt == "A golden retriever in warm light, photorealistic"

    def test_enhancement_failure_skips_generation(self):
        enhancer = make_enhancer()
        enhancer.enhance.side_effect = UpstreamProviderError("anthropic", "overloaded")
        orch = _orchestrator(prompt_enhancer=enhancer)
        with pytest.raises(UpstreamProviderError):
            asyncio.run(orch.process_message("draw a tree"))
        orch.image_provider.generate.assert_not_called()
        assert orch.get_history() == []

    def test_explicit_reference_triggers_edit(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("create an image of this lamp", reference_image="https://x.test/lamp.png"))
        orch.image_provider.edit.assert_awaited_once()
        assert orch.image_provider.edit.await_args.args[1] == "https://x.test/lamp.png"
        orch.image_provider.generate.assert_not_called()

    def test_stored_reference_used_for_follow_up(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("generate an image of a mug"))
        first_url = orch.get_reference_images()[-1].url
        asyncio.run(orch.process_message("make one with a woman holding the mug"))
        assert orch.image_provider.edit.await_args.args[1] == first_url

    def test_lifestyle_request_adds_context(self):
        orch = _orchestrator()
        envelope = asyncio.run(orch.process_message("create one with a woman holding it"))
        context = orch.prompt_enhancer.enhance.await_args.kwargs["context"]
        assert "lifestyle photography" in context.lower()
        assert envelope.structured_data["lifestyle"] is True

    def test_new_image_is_most_recent_reference(self):
        orch = _orchestrator()
        envelope = asyncio.run(orch.process_message("generate a picture of a dog"))
        images = orch.get_reference_images()
        assert images[-1].url == envelope.image_url
        assert images[-1].description == envelope.enhanced_prompt


class TestBoundedState:
    """History and reference images respect their caps."""

    def test_reference_images_keep_most_recent(self):
        enhancer = make_enhancer()
        enhancer.enhance.side_effect = lambda message, context=None: f"enhanced {message}"
        orch = _orchestrator(prompt_enhancer=enhancer, reference_image_limit=5)
        for index in range(8):
            asyncio.run(orch.process_message(f"generate an image of cat {index}"))
        descriptions = [image.description for image in orch.get_reference_images()]
        assert descriptions == [f"enhanced cat {index}" for index in range(3, 8)]

    def test_history_cap(self):
        orch = _orchestrator(history_limit=4)
        for index in range(5):
            asyncio.run(orch.process_message(f"question {index}"))
        history = orch.get_history()
        assert len(history) == 4
        assert history[0].content == "question 3"

    def test_clear_history_then_continue(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("hi"))
        orch.clear_history()
        assert orch.get_history() == []
        asyncio.run(orch.process_message("hello again"))
        history = orch.get_history()
        assert [turn.role for turn in history] == ["user", "assistant"]
        assert history[0].content == "hello again"

    def test_clear_history_keeps_reference_images(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("draw a boat"))
        orch.clear_history()
        assert len(orch.get_reference_images()) == 1
        orch.clear_reference_images()
        assert orch.get_reference_images() == []

    def test_accessors_return_copies(self):
        orch = _orchestrator()
        asyncio.run(orch.process_message("hi"))
        orch.get_history().clear()
        assert len(orch.get_history()) == 2


class TestValidationAndFailures:
    """Invalid input and provider failures leave state untouched."""

    @pytest.mark.parametrize("message", [None, "", "   "])
    def test_missing_message_rejected_before_providers(self, message):
        orch = _orchestrator()
        with pytest.raises(ValidationError):
            asyncio.run(orch.process_message(message))
        orch.text_provider.respond.assert_not_called()
        orch.prompt_enhancer.enhance.assert_not_called()

    def test_provider_failure_leaves_history_unchanged(self):
        text = make_text_provider()
        text.respond.side_effect = UpstreamProviderError("openai", "Rate limit reached")
        orch = _orchestrator(text_provider=text)
        with pytest.raises(UpstreamProviderError) as info:
            asyncio.run(orch.process_message("hello"))
        assert info.value.status_code == 429
        assert orch.get_history() == []


class TestSearchPaths:
    """Search options attach tools and merge call records."""

    def test_web_search_tool_and_calls(self):
        call = WebSearchCall(id="ws_1", status="completed", query="latest news")
        text = make_text_provider("Here is the news", web_search_calls=[call])
        orch = _orchestrator(text_provider=text)
        envelope = asyncio.run(orch.process_message("What happened today?", web_search_options={"enabled": True}))
        tools = text.respond.await_args.kwargs["tools"]
        assert tools[0]["type"] == "web_search_preview"
        assert envelope.type == "text"
        assert envelope.to_dict()["webSearchCalls"][0]["query"] == "latest news"

    def test_file_search_without_vector_store_fails(self):
        orch = _orchestrator()
        with pytest.raises(UpstreamProviderError) as info:
            asyncio.run(orch.process_message("What does the doc say?", file_search_options={"enabled": True}))
        assert info.value.status_code == 503
        orch.text_provider.respond.assert_not_called()

    def test_file_search_uses_configured_stores(self):
        orch = _orchestrator(vector_store_ids=["vs_123"])
        asyncio.run(orch.process_message("Find the refund policy", file_search_options={"maxResults": 3}))
        kwargs = orch.text_provider.respond.await_args.kwargs
        assert kwargs["tools"] == [{"type": "file_search", "vector_store_ids": ["vs_123"], "max_num_results": 3}]
        assert kwargs["include"] == ["file_search_call.results"]

    def test_image_trigger_wins_over_search(self):
        orch = _orchestrator()
        envelope = asyncio.run(orch.process_message("draw a map", web_search_options={"enabled": True}))
        assert envelope.type == "image"
