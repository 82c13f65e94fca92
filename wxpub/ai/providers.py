"""AI provider adapters used for cover generation.

Every provider exposes the same two capabilities: turn article text into a
short visual scene description, and turn that description into an image.
"""

from __future__ import annotations

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

import requests
from google import genai
from google.genai import types

from ..errors import AIError
from ..settings import AIProviderSettings
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

ASPECT_RATIO_WIDE = "16:9"
MAX_SCENE_INPUT_CHARS = 2000

SCENE_PROMPT = (
    "Generate a 2-sentence visual scene description in English for a cover image "
    "based on this article content:\n\n{content}\n\nScene description:"
)
IMAGE_PROMPT = "Create a wide, Ghibli-style image to represent this scene: {scene}"
FALLBACK_SCENE = (
    "A serene landscape with rolling hills under a soft, dreamy sky filled with gentle "
    "clouds. The scene evokes a sense of peaceful contemplation and infinite possibilities."
)


@dataclass(frozen=True, slots=True)
class GeneratedImage:
    """Image payload as returned by a provider: raw bytes or base64 text."""

    data: bytes | None = None
    b64: str | None = None
    mime_type: str | None = None

    def decode(self) -> bytes:
        if self.data:
            return self.data
        if self.b64:
            encoded = self.b64.removeprefix("base64:")
            try:
                decoded = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise AIError("Failed to decode base64 image payload") from exc
            if decoded:
                return decoded
        raise AIError("Image payload is empty")


class SceneDescriber(Protocol):
    def describe_scene(self, text: str) -> str:
        """Return a short English scene description for ``text``."""


class ImageGenerator(Protocol):
    def generate_image(self, description: str, aspect_ratio: str) -> GeneratedImage:
        """Render ``description`` as an image with the given aspect ratio."""


class AIClient(SceneDescriber, ImageGenerator, Protocol):
    provider_name: str


def scene_prompt(content: str) -> str:
    return SCENE_PROMPT.format(content=content[:MAX_SCENE_INPUT_CHARS])


def image_prompt(description: str) -> str:
    return IMAGE_PROMPT.format(scene=description)


class GeminiAIClient:
    """Gemini text + Imagen image generation through ``google-genai``."""

    provider_name = "gemini"

    def __init__(
        self,
        client: genai.Client,
        *,
        text_model: str = "gemini-2.5-flash",
        image_model: str = "imagen-4.0-generate-001",
        temperature: float = 0.7,
    ) -> None:
        self._client = client
        self._text_model = text_model
        self._image_model = image_model
        self._temperature = temperature

    @classmethod
    def from_settings(cls, settings: AIProviderSettings) -> "GeminiAIClient":
        http_options = types.HttpOptions(base_url=settings.base_url) if settings.base_url else None
        client = genai.Client(api_key=settings.api_key, http_options=http_options)
        kwargs: dict[str, Any] = {}
        if settings.text_model:
            kwargs["text_model"] = settings.text_model
        if settings.image_model:
            kwargs["image_model"] = settings.image_model
        return cls(client, **kwargs)

    def describe_scene(self, text: str) -> str:
        start = time.monotonic()
        try:
            response = self._client.models.generate_content(
                model=self._text_model,
                contents=scene_prompt(text),
                config=types.GenerateContentConfig(temperature=self._temperature),
            )
        except Exception as exc:
            raise AIError(
                "Gemini scene description failed",
                details={"model": self._text_model, "reason": str(exc)},
            ) from exc
        LOGGER.debug(
            "Gemini scene description finished in %.2fs",
            time.monotonic() - start,
            extra={"event": "ai.describe", "provider": self.provider_name},
        )
        return (response.text or "").strip() or FALLBACK_SCENE

    def generate_image(self, description: str, aspect_ratio: str) -> GeneratedImage:
        try:
            response = self._client.models.generate_images(
                model=self._image_model,
                prompt=image_prompt(description),
                config=types.GenerateImagesConfig(number_of_images=1, aspect_ratio=aspect_ratio),
            )
        except Exception as exc:
            raise AIError(
                "Gemini image generation failed",
                details={"model": self._image_model, "reason": str(exc)},
            ) from exc

        generated = response.generated_images or []
        image = generated[0].image if generated else None
        if image is None or not image.image_bytes:
            raise AIError("No predictions found in Gemini response", details={"model": self._image_model})
        return GeneratedImage(data=image.image_bytes, mime_type=image.mime_type)


class OpenAIClient:
    """OpenAI chat completions + image generations over REST."""

    provider_name = "openai"

    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    _SIZES = {"16:9": "1792x1024", "1:1": "1024x1024", "9:16": "1024x1792"}

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        text_model: str = "gpt-4o-mini",
        image_model: str = "dall-e-3",
        temperature: float = 0.7,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._text_model = text_model
        self._image_model = image_model
        self._temperature = temperature
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: AIProviderSettings) -> "OpenAIClient":
        kwargs: dict[str, Any] = {}
        if settings.text_model:
            kwargs["text_model"] = settings.text_model
        if settings.image_model:
            kwargs["image_model"] = settings.image_model
        return cls(settings.api_key, base_url=settings.base_url, **kwargs)

    def _post(self, endpoint: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{endpoint}"
        try:
            response = requests.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise AIError("OpenAI request failed", details={"endpoint": endpoint, "reason": str(exc)}) from exc

        if response.status_code >= 400:
            raise AIError(
                f"OpenAI API request failed with status {response.status_code}",
                details={"endpoint": endpoint, "body": response.text[:500]},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise AIError("Failed to decode OpenAI response", details={"body": response.text[:200]}) from exc

    def describe_scene(self, text: str) -> str:
        data = self._post(
            "chat/completions",
            {
                "model": self._text_model,
                "messages": [
                    {
                        "role": "system",
                        "content": "Generate a 2-sentence visual scene description in English "
                        "for a cover image based on the article content.",
                    },
                    {
                        "role": "user",
                        "content": f"Article content:\n\n{text[:MAX_SCENE_INPUT_CHARS]}\n\nScene description:",
                    },
                ],
                "temperature": self._temperature,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            content = ""
        return content.strip() or FALLBACK_SCENE

    def generate_image(self, description: str, aspect_ratio: str) -> GeneratedImage:
        size = self._SIZES.get(aspect_ratio)
        if size is None:
            raise AIError(f"Unsupported aspect ratio {aspect_ratio}", details={"supported": list(self._SIZES)})
        data = self._post(
            "images/generations",
            {
                "model": self._image_model,
                "prompt": image_prompt(description),
                "size": size,
                "quality": "standard",
                "n": 1,
            },
        )
        try:
            item = data["data"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise AIError("Failed to extract image data from OpenAI response") from exc

        if item.get("b64_json"):
            return GeneratedImage(b64=item["b64_json"])
        if item.get("url"):
            return self._download(item["url"])
        raise AIError("Failed to extract image data from OpenAI response")

    def _download(self, url: str) -> GeneratedImage:
        try:
            response = requests.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise AIError("Failed to download image", details={"reason": str(exc)}) from exc
        return GeneratedImage(data=response.content, mime_type=response.headers.get("Content-Type"))


class ProviderFactory:
    """Registry-backed factory keyed by provider name."""

    def __init__(self, builders: Mapping[str, Callable[[AIProviderSettings], AIClient]]) -> None:
        self._builders = {key.lower(): value for key, value in builders.items()}

    def create(self, settings: AIProviderSettings) -> AIClient:
        try:
            builder = self._builders[settings.name.lower()]
        except KeyError as exc:
            raise AIError(f"Unsupported AI provider: {settings.name}") from exc
        return builder(settings)


DEFAULT_PROVIDERS = ProviderFactory(
    {
        "openai": OpenAIClient.from_settings,
        "gemini": GeminiAIClient.from_settings,
    }
)


def build_ai_client(
    settings: AIProviderSettings | None,
    *,
    factory: ProviderFactory = DEFAULT_PROVIDERS,
) -> AIClient | None:
    if settings is None:
        return None
    return factory.create(settings)


__all__ = [
    "AIClient",
    "ASPECT_RATIO_WIDE",
    "DEFAULT_PROVIDERS",
    "FALLBACK_SCENE",
    "GeminiAIClient",
    "GeneratedImage",
    "ImageGenerator",
    "OpenAIClient",
    "ProviderFactory",
    "SceneDescriber",
    "build_ai_client",
    "image_prompt",
    "scene_prompt",
]
