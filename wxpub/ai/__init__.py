"""AI utilities for cover image generation."""

from .cover import CoverImageOrchestrator, CoverResult, CoverState
from .providers import (
    ASPECT_RATIO_WIDE,
    AIClient,
    GeminiAIClient,
    GeneratedImage,
    OpenAIClient,
    ProviderFactory,
    build_ai_client,
)

__all__ = [
    "ASPECT_RATIO_WIDE",
    "AIClient",
    "CoverImageOrchestrator",
    "CoverResult",
    "CoverState",
    "GeminiAIClient",
    "GeneratedImage",
    "OpenAIClient",
    "ProviderFactory",
    "build_ai_client",
]
