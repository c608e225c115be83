"""Prompt helpers for the chat flow orchestrator and the prompt enhancer."""

from __future__ import annotations

from typing import Any, Dict, Optional

CHAT_RESPONSE_SCHEMA: Dict[str, Any] = {
	"type": "object",
	"properties": {
		"content": {"type": "string", "description": "The main response content from the AI"},
		"confidence": {"type": "number", "description": "Confidence level in the response (0-1)"},
		"suggestions": {
			"type": "array",
			"items": {"type": "string"},
			"description": "Optional follow-up suggestions for the user",
		},
		"metadata": {
			"type": "object",
			"properties": {
				"reasoning": {"type": "string"},
				"sources": {"type": "array", "items": {"type": "string"}},
				"web_search_used": {"type": "boolean"},
				"file_search_used": {"type": "boolean"},
			},
			"required": ["reasoning", "sources", "web_search_used", "file_search_used"],
			"additionalProperties": False,
		},
	},
	"required": ["content", "confidence", "suggestions", "metadata"],
	"additionalProperties": False,
}


def chat_response_format() -> Dict[str, Any]:
	"""Return the Responses API `text.format` block for structured chat answers."""
	return {"type": "json_schema", "name": "chat_response", "schema": CHAT_RESPONSE_SCHEMA, "strict": True}


def chat_system_instructions(web_search: bool = False, file_search: bool = False) -> str:
	"""Return the assistant identity plus citation rules for enabled search tools."""
	sections = [
		"# Identity\nYou are GenLo, a helpful and intelligent assistant. "
		"You provide clear, accurate, and engaging responses to user queries.",
		"# Instructions\n"
		"- Be helpful, accurate, and engaging\n"
		"- Provide clear and concise explanations\n"
		"- If you're unsure about something, say so\n"
		"- Keep responses focused and relevant to the user's question",
	]
	if web_search:
		sections.append(
			"# Web Search\nYou can search the web for the latest information. "
			"Cite sources inline with URLs and titles and say which facts came from the web."
		)
	if file_search:
		sections.append(
			"# File Search\nYou can search uploaded documents. "
			"Cite the file names you used and say which facts came from the documents."
		)
	return "\n\n".join(sections)


def enhancement_system_prompt() -> str:
	"""Return the system prompt for the creative prompt enhancer."""
	return (
		"# Identity\n"
		"You are a creative prompt enhancement specialist for GenLo. You turn short user requests "
		"into detailed, imaginative prompts that produce high-quality results.\n\n"
		"# Instructions\n"
		"- Keep the user's original intent\n"
		"- For image requests describe style, composition, lighting and mood\n"
		"- Keep enhanced prompts under 1000 characters\n"
		"- Reply with the enhanced prompt only\n\n"
		"# Example\n"
		"<user_request>Draw a cat</user_request>\n"
		"<enhanced_prompt>A majestic orange tabby cat sitting regally on a sunlit windowsill, detailed fur "
		"texture, warm golden lighting, photorealistic style, high quality</enhanced_prompt>"
	)


def enhancement_user_prompt(message: str, context: Optional[str] = None) -> str:
	"""Return the user turn sent to the enhancer."""
	request = f'Enhance this request: "{message}"'
	return f"{request}\n\nContext: {context}" if context else request


def lifestyle_context(message: str) -> str:
	"""Return the photography framing for a lifestyle product request."""
	lowered = message.lower()
	if "woman holding" in lowered or "with a woman" in lowered:
		subject = "a friendly young woman holding the product, looking at the camera with a warm smile"
	elif "person holding" in lowered or "with someone" in lowered:
		subject = "a person holding the product, looking at the camera with a friendly expression"
	elif "product shot" in lowered or "product image" in lowered:
		subject = "a person demonstrating the product in a professional product shot"
	else:
		subject = "a person using the product in a natural everyday setting"
	return (
		f"Professional lifestyle photography of {subject}. Keep the product identical to the reference image, "
		"clean background, natural lighting, sharp focus, commercial advertising quality."
	)


def image_reply(subject: str, edited: bool) -> str:
	"""Return the assistant text that accompanies a generated image."""
	verb = "updated the reference image" if edited else "generated an image"
	return f"I've {verb} for \"{subject}\". [Image generated]"
