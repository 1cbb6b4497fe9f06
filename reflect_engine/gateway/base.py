"""Adapter contracts and the failure-normalizing gateway."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .thinking import strip_hidden_reasoning

log = logging.getLogger("reflect.gateway")

REFLECTION_FALLBACK = "Unexpected anomalies. Further reflection needed."
ANALYSIS_FALLBACK = "Unable to analyze image. Unexpected anomalies detected."


@dataclass(frozen=True)
class ReflectionResult:
    raw: str
    cleaned: str
    fallback: bool = False

    @classmethod
    def from_raw(cls, raw: str) -> "ReflectionResult":
        text = raw.strip()
        return cls(raw=text, cleaned=strip_hidden_reasoning(text))


class Reasoner(Protocol):
    name: str

    def reflect(self, topic: str, text: str, history: str) -> ReflectionResult:
        ...


class ImageGenerator(Protocol):
    name: str

    def generate(self, prompt: str) -> bytes:
        ...


class ImageAnalyzer(Protocol):
    name: str

    def analyze(self, topic: str, image_path: Path) -> str:
        ...


class ServiceGateway:
    """Wraps the three adapters; nothing raised by an adapter escapes."""

    def __init__(self, reasoner: Reasoner, generator: ImageGenerator, analyzer: ImageAnalyzer) -> None:
        self.reasoner = reasoner
        self.generator = generator
        self.analyzer = analyzer

    def reflect(self, topic: str, text: str, history: str) -> ReflectionResult:
        try:
            result = self.reasoner.reflect(topic, text, history)
        except Exception as exc:
            log.error("Reflection failed (%s): %s", self.reasoner.name, exc)
            return ReflectionResult(raw=REFLECTION_FALLBACK, cleaned=REFLECTION_FALLBACK, fallback=True)
        if not result.cleaned:
            log.warning("Reflection from %s was empty after cleanup", self.reasoner.name)
            return ReflectionResult(raw=result.raw, cleaned=REFLECTION_FALLBACK, fallback=True)
        return result

    def generate(self, prompt: str) -> bytes | None:
        try:
            data = self.generator.generate(prompt)
        except Exception as exc:
            log.error("Image generation failed (%s): %s", self.generator.name, exc)
            return None
        if not data:
            log.error("Image generation returned no data (%s)", self.generator.name)
            return None
        return data

    def analyze(self, topic: str, image_path: Path) -> str:
        try:
            text = self.analyzer.analyze(topic, image_path).strip()
        except Exception as exc:
            log.error("Image analysis failed (%s): %s", self.analyzer.name, exc)
            return ANALYSIS_FALLBACK
        return text or ANALYSIS_FALLBACK
