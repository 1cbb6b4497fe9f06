"""Gateway construction."""

from __future__ import annotations

from ..config import EngineConfig
from .base import ServiceGateway
from .dryrun import DryRunAnalyzer, DryRunGenerator, DryRunReasoner
from .ollama import OllamaAnalyzer, OllamaReasoner
from .stable_diffusion import StableDiffusionGenerator


def default_gateway(config: EngineConfig) -> ServiceGateway:
    if config.provider == "dryrun":
        return ServiceGateway(DryRunReasoner(), DryRunGenerator(), DryRunAnalyzer())
    if config.provider != "ollama":
        raise ValueError(f"Unknown provider {config.provider!r} (expected 'ollama' or 'dryrun')")
    return ServiceGateway(
        OllamaReasoner(config.ollama_url, config.text_model, timeout_s=config.request_timeout_s),
        StableDiffusionGenerator(config.stable_diffusion_url, timeout_s=config.request_timeout_s),
        OllamaAnalyzer(config.ollama_url, config.vision_model, timeout_s=config.request_timeout_s),
    )
