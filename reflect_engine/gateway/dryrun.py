"""Offline adapters for running the loop without any model servers."""

from __future__ import annotations

import hashlib
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from .base import ReflectionResult


class DryRunReasoner:
    name = "dryrun"

    def reflect(self, topic: str, text: str, history: str) -> ReflectionResult:
        depth = history.count("\n---\n") + 1 if history else 0
        snippet = " ".join(text.split())[:80]
        raw = (
            f"<think>Considering {snippet!r} with {depth} prior reflections.</think>\n"
            f"A surreal study of {topic}, echoing: {snippet}"
        )
        return ReflectionResult.from_raw(raw)


class DryRunGenerator:
    name = "dryrun"

    def __init__(self, size: tuple[int, int] = (512, 512)) -> None:
        self.size = size

    def generate(self, prompt: str) -> bytes:
        image = Image.new("RGB", self.size, _color_from_prompt(prompt))
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()
        draw.text((20, 20), f"dryrun\n{prompt[:60]}", fill=(255, 255, 255), font=font)
        buf = BytesIO()
        image.save(buf, format="PNG")
        return buf.getvalue()


class DryRunAnalyzer:
    name = "dryrun"

    def analyze(self, topic: str, image_path: Path) -> str:
        with Image.open(image_path) as image:
            width, height = image.size
            rgb = image.convert("RGB")
        r, g, b = rgb.resize((1, 1)).getpixel((0, 0))
        return (
            f"A {width}x{height} image dominated by rgb({r}, {g}, {b}). "
            f"Its mood loosely recalls {topic}."
        )


def _color_from_prompt(prompt: str) -> tuple[int, int, int]:
    digest = hashlib.sha256(prompt.encode("utf-8")).digest()
    return digest[0], digest[1], digest[2]
