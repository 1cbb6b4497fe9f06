"""Reasoning and vision adapters backed by an Ollama server."""

from __future__ import annotations

import base64
from io import BytesIO
from pathlib import Path
from typing import Any, Mapping

from PIL import Image

from ..config import DEFAULT_OLLAMA_URL, DEFAULT_TEXT_MODEL, DEFAULT_VISION_MODEL
from .base import ReflectionResult
from .http_utils import post_json


def build_reflection_prompt(topic: str, text: str, history: str) -> str:
    parts = [
        f'Original concept: "{topic}"',
    ]
    if history:
        parts.append(f"Recent reflections, oldest first:\n{history}")
    parts.append(
        "Critically reflect on the following and generate an idea for an image. "
        "Answer with a single image-generation prompt.\n"
        f'"{text}"'
    )
    return "\n\n".join(parts)


def build_analysis_prompt(topic: str) -> str:
    return (
        "Describe this image in detail. Identify patterns, themes, or anomalies. "
        f'Relate what you see to the concept "{topic}".'
    )


class OllamaReasoner:
    name = "ollama"

    def __init__(
        self,
        url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_TEXT_MODEL,
        timeout_s: float = 300.0,
    ) -> None:
        self.url = url
        self.model = model
        self.timeout_s = timeout_s

    def reflect(self, topic: str, text: str, history: str) -> ReflectionResult:
        payload = {
            "model": self.model,
            "prompt": build_reflection_prompt(topic, text, history),
            "stream": False,
        }
        response = post_json(self.url, payload, service="Ollama", timeout_s=self.timeout_s)
        return ReflectionResult.from_raw(_extract_response_text(response))


class OllamaAnalyzer:
    name = "ollama-vision"

    def __init__(
        self,
        url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_VISION_MODEL,
        timeout_s: float = 300.0,
    ) -> None:
        self.url = url
        self.model = model
        self.timeout_s = timeout_s

    def analyze(self, topic: str, image_path: Path) -> str:
        image_bytes = prepare_vision_image(image_path)
        payload = {
            "model": self.model,
            "prompt": build_analysis_prompt(topic),
            "images": [base64.b64encode(image_bytes).decode("ascii")],
            "stream": False,
        }
        response = post_json(self.url, payload, service="Ollama", timeout_s=self.timeout_s)
        return _extract_response_text(response)


def prepare_vision_image(image_path: Path, *, max_dim: int = 1024) -> bytes:
    """Downscale and re-encode as PNG to keep vision payloads small."""
    with Image.open(image_path) as image:
        rgb = image.convert("RGB")
    rgb.thumbnail((max_dim, max_dim))
    buf = BytesIO()
    rgb.save(buf, format="PNG")
    return buf.getvalue()


def _extract_response_text(response: Mapping[str, Any]) -> str:
    error = response.get("error")
    if error:
        raise RuntimeError(f"Ollama error: {error}")
    value = response.get("response")
    if not isinstance(value, str):
        raise RuntimeError("Ollama response missing 'response' text")
    return value.strip()
