"""Utilities to build multimodal input payloads for the Responses API."""

from typing import Any, Dict, List, Optional


def text_message(role: str, text: str) -> Dict[str, Any]:
    return {"type": "message", "role": role, "content": [{"type": "input_text", "text": text}]}


def build_vision_inputs(prompt: str, image_url: str, system_prompt: Optional[str] = None) -> List[Dict[str, Any]]:
    """Pair the question and the image in one user message, after an optional system turn."""
    inputs: List[Dict[str, Any]] = []
    if system_prompt:
        inputs.append(text_message("system", system_prompt))
    inputs.append(
        {
            "type": "message",
            "role": "user",
            "content": [
                {"type": "input_text", "text": prompt},
                {"type": "input_image", "image_url": image_url},
            ],
        }
    )
    return inputs
