"""Image generation on Replicate-hosted models."""

import base64
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from services.openai.image_provider import clamp_prompt
from utils.errors import UpstreamProviderError, ValidationError
from utils.polling import PollingPolicy

LOGGER = logging.getLogger(__name__)
PROVIDER = "replicate"
REPLICATE_BASE_URL = "https://api.replicate.com/v1"
SDXL_MODEL = "stability-ai/sdxl:39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
TERMINAL_FAILURES = ("failed", "canceled")


@dataclass
class ReplicateImage:
    image_url: str
    model: str
    prediction_id: str
    image_base64: Optional[str] = None
    mime_type: str = "image/png"


def parse_model(model: str) -> Tuple[str, Optional[str]]:
    """Split `owner/name[:version]` into the model path and optional version."""
    if not model or "/" not in model:
        raise ValidationError("Replicate model must look like owner/name[:version]")
    path, _, version = model.partition(":")
    return path, version or None


def parse_size(size: str) -> Tuple[int, int]:
    try:
        width, height = (int(part) for part in size.lower().split("x", 1))
    except ValueError as exc:
        raise ValidationError(f"Invalid size {size!r}; expected WIDTHxHEIGHT") from exc
    return width, height


class ReplicateImageProvider:
    """Create a prediction, poll it to completion, optionally inline the result."""

    def __init__(
        self,
        api_token: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        polling: Optional[PollingPolicy] = None,
    ) -> None:
        if not api_token:
            raise ValueError("Replicate API token must be provided.")
        self.api_token = api_token
        self.http_client = http_client or httpx.AsyncClient(base_url=REPLICATE_BASE_URL, timeout=60.0)
        self.polling = polling or PollingPolicy(interval_seconds=1.0, max_attempts=60)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_token}", "Content-Type": "application/json"}

    def build_input(
        self,
        model: str,
        prompt: str,
        *,
        size: str = "1024x1024",
        quality: Optional[str] = None,
        negative_prompt: str = "",
        seed: Optional[int] = None,
        num_inference_steps: int = 50,
        guidance_scale: float = 7.5,
    ) -> Dict[str, Any]:
        width, height = parse_size(size)
        payload: Dict[str, Any] = {
            "prompt": clamp_prompt(prompt),
            "negative_prompt": negative_prompt,
            "width": width,
            "height": height,
            "num_inference_steps": num_inference_steps,
            "guidance_scale": guidance_scale,
            "seed": seed if seed is not None and seed >= 0 else random.randint(0, 999999),
            "num_outputs": 1,
        }
        if "sdxl" in model:
            payload["scheduler"] = "K_EULER"
            payload["refine"] = "expert_ensemble_refiner" if quality == "high" else "base_image_refiner"
            payload["high_noise_frac"] = 0.8 if quality == "high" else 0.7
        return payload

    async def _call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.http_client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            LOGGER.error("Replicate request %s %s failed: %s", method, path, exc)
            raise UpstreamProviderError(PROVIDER, f"Replicate request failed: {exc}") from exc
        if response.status_code >= 400:
            detail = response.text[:500]
            LOGGER.error("Replicate %s %s returned %s: %s", method, path, response.status_code, detail)
            raise UpstreamProviderError(PROVIDER, f"Replicate returned HTTP {response.status_code}: {detail}")
        return response.json()

    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        size: str = "1024x1024",
        quality: Optional[str] = None,
        inline: bool = True,
        **options: Any,
    ) -> ReplicateImage:
        """Run `model` on `prompt` and return the first output image."""
        if "1536" in size and "sdxl" not in model:
            model = SDXL_MODEL
        model_path, version = parse_model(model)
        model_input = self.build_input(model, prompt, size=size, quality=quality, **options)

        if version:
            prediction = await self._call("POST", "/predictions", json={"version": version, "input": model_input})
        else:
            prediction = await self._call("POST", f"/models/{model_path}/predictions", json={"input": model_input})
        prediction_id = prediction.get("id")
        if not prediction_id:
            raise UpstreamProviderError(PROVIDER, "Replicate did not return a prediction id")
        LOGGER.info("Started Replicate prediction %s on %s", prediction_id, model_path)

        async def probe() -> Optional[Dict[str, Any]]:
            current = await self._call("GET", f"/predictions/{prediction_id}")
            status = current.get("status")
            if status == "succeeded":
                return current
            if status in TERMINAL_FAILURES:
                raise UpstreamProviderError(PROVIDER, current.get("error") or f"Prediction {status}")
            return None

        if prediction.get("status") == "succeeded":
            finished = prediction
        else:
            finished = await self.polling.run(probe, description=f"Replicate prediction {prediction_id}")

        output = finished.get("output")
        image_url = output[0] if isinstance(output, list) and output else output
        if not image_url or not isinstance(image_url, str):
            raise UpstreamProviderError(PROVIDER, "No image returned from Replicate")

        result = ReplicateImage(image_url=image_url, model=model, prediction_id=prediction_id)
        if inline:
            result.image_base64, result.mime_type = await self._inline(image_url)
        return result

    async def _inline(self, url: str) -> Tuple[str, str]:
        try:
            response = await self.http_client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamProviderError(PROVIDER, f"Failed to download Replicate output: {exc}") from exc
        mime_type = response.headers.get("content-type", "image/png").split(";", 1)[0].strip()
        return base64.b64encode(response.content).decode("ascii"), mime_type

    async def aclose(self) -> None:
        await self.http_client.aclose()
