"""Image generation through the Stable Diffusion WebUI txt2img API."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from ..config import DEFAULT_STABLE_DIFFUSION_URL
from .http_utils import post_json

DEFAULT_TXT2IMG_OPTIONS: dict[str, Any] = {
    "steps": 20,
    "cfg_scale": 7,
    "width": 512,
    "height": 512,
    "sampler_name": "Euler a",
}


class StableDiffusionGenerator:
    name = "stable-diffusion"

    def __init__(
        self,
        url: str = DEFAULT_STABLE_DIFFUSION_URL,
        timeout_s: float = 300.0,
        options: dict[str, Any] | None = None,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.options = dict(DEFAULT_TXT2IMG_OPTIONS)
        if options:
            self.options.update(options)

    def build_payload(self, prompt: str) -> dict[str, Any]:
        payload = dict(self.options)
        payload["prompt"] = prompt
        return payload

    def generate(self, prompt: str) -> bytes:
        response = post_json(self.url, self.build_payload(prompt), service="Stable Diffusion", timeout_s=self.timeout_s)
        images = response.get("images")
        if not isinstance(images, list) or not images or not isinstance(images[0], str):
            raise RuntimeError("Stable Diffusion response contained no images")
        encoded = images[0]
        # Some WebUI builds prefix a data URL header.
        if encoded.startswith("data:") and "," in encoded:
            encoded = encoded.split(",", 1)[1]
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise RuntimeError("Stable Diffusion returned undecodable image data") from exc
