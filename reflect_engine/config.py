"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .utils import getenv_float, getenv_int

DEFAULT_PORT = 3000
DEFAULT_OLLAMA_URL = "http://localhost:11434/api/generate"
DEFAULT_STABLE_DIFFUSION_URL = "http://127.0.0.1:7860/sdapi/v1/txt2img"
DEFAULT_TEXT_MODEL = "deepseek-r1:8b-llama-distill-q4_K_M"
DEFAULT_VISION_MODEL = "llava"

FAILURE_POLICIES = ("halt", "continue")


@dataclass
class EngineConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    provider: str = "ollama"
    ollama_url: str = DEFAULT_OLLAMA_URL
    stable_diffusion_url: str = DEFAULT_STABLE_DIFFUSION_URL
    text_model: str = DEFAULT_TEXT_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    image_dir: Path = Path("public/images")
    public_prefix: str = "/images"
    log_path: Path = Path("reflection_log.txt")
    events_path: Path = Path("events.jsonl")
    iteration_delay_s: float = 5.0
    context_size: int = 5
    request_timeout_s: float = 300.0
    generation_failure: str = "halt"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        policy = (os.getenv("REFLECT_GENERATION_FAILURE") or "halt").strip().lower()
        if policy not in FAILURE_POLICIES:
            policy = "halt"
        return cls(
            host=os.getenv("HOST") or "127.0.0.1",
            port=getenv_int("PORT", DEFAULT_PORT),
            provider=(os.getenv("REFLECT_PROVIDER") or "ollama").strip().lower(),
            ollama_url=os.getenv("OLLAMA_URL") or DEFAULT_OLLAMA_URL,
            stable_diffusion_url=os.getenv("STABLE_DIFFUSION_URL") or DEFAULT_STABLE_DIFFUSION_URL,
            text_model=os.getenv("REFLECT_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
            vision_model=os.getenv("REFLECT_VISION_MODEL") or DEFAULT_VISION_MODEL,
            image_dir=Path(os.getenv("REFLECT_IMAGE_DIR") or "public/images"),
            log_path=Path(os.getenv("REFLECT_LOG_PATH") or "reflection_log.txt"),
            events_path=Path(os.getenv("REFLECT_EVENTS_PATH") or "events.jsonl"),
            iteration_delay_s=max(0.0, getenv_float("REFLECT_ITERATION_DELAY", 5.0)),
            context_size=max(1, getenv_int("REFLECT_CONTEXT_SIZE", 5)),
            request_timeout_s=getenv_float("REFLECT_TIMEOUT", 300.0),
            generation_failure=policy,
        )
