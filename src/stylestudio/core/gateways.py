"""Gateways to the external generative model.

This module is the only place that talks to the Gemini API.  It provides two
gateways sharing one lazily-created ``google.genai`` client:

- :class:`StyleExtractionGateway`: reference images + fixed analysis
  instruction → textual style descriptor.
- :class:`ImageGenerationGateway`: style descriptor + optional reference
  image + instruction → generated image, or a text fallback.

Response Handling
-----------------
The SDK response is first normalised into a flat sequence of
:class:`TextPart` / :class:`ImagePart` values by :func:`response_parts`.
:func:`select_generation_result` then applies the selection rule as a pure
function: the first image part wins; if there is none, the concatenated text
is returned as a :class:`TextFallback`.  A text-only answer is not an error at
this layer because whether an image model returns pixels depends on account
and model configuration outside Style Studio's control.

Failure Handling
----------------
Each call is a single attempt.  Transport and API errors are re-raised as
:class:`~stylestudio.core.errors.ExtractionFailed` or
:class:`~stylestudio.core.errors.GenerationFailed`; the API layer turns them
into ``{"success": false, "error": ...}`` responses.

Usage
-----
::

    from stylestudio.core.config import config
    from stylestudio.core.gateways import ImageGenerationGateway

    gateway = ImageGenerationGateway(config)
    result = gateway.generate(
        descriptor="Vibrant neon palette...",
        model_id="gemini-3.1-flash-image-preview",
        aspect_ratio="16:9",
        reference_image="data:image/png;base64,iVBORw0...",
    )
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

from google import genai
from google.genai import types

from stylestudio.core.config import StudioConfig
from stylestudio.core.data_uri import build_data_uri, decode_data_uri
from stylestudio.core.errors import ExtractionFailed, GenerationFailed, UpstreamError, ValidationError
from stylestudio.core.prompts import build_extraction_prompt, build_generation_prompt

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Normalised response parts and generation results.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextPart:
    """A text part of a model response."""

    text: str


@dataclass(frozen=True)
class ImagePart:
    """An inline image part of a model response.

    Attributes:
        mime_type: Image mime type reported by the model.
        data: Raw image bytes, or a base64 string if the SDK returned one.
    """

    mime_type: str
    data: bytes | str

    def to_data_uri(self) -> str:
        return build_data_uri(self.mime_type, self.data)


ResponsePart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class GeneratedImage:
    """The model produced an image (as a data URI)."""

    image: str


@dataclass(frozen=True)
class TextFallback:
    """The model produced no image; ``text`` is whatever it said instead."""

    text: str


GenerationResult = Union[GeneratedImage, TextFallback]


def response_parts(response: types.GenerateContentResponse) -> list[ResponsePart]:
    """Flatten the first candidate of an SDK response into tagged parts.

    Thought parts (model reasoning) are skipped.  Parts carrying neither
    text nor inline data are ignored.
    """
    candidates = response.candidates or []
    if not candidates or candidates[0].content is None:
        return []

    parts: list[ResponsePart] = []
    for part in candidates[0].content.parts or []:
        if part.thought is True:
            continue
        if part.inline_data is not None and part.inline_data.data:
            parts.append(
                ImagePart(
                    mime_type=part.inline_data.mime_type or "image/png",
                    data=part.inline_data.data,
                )
            )
        elif part.text:
            parts.append(TextPart(text=part.text))
    return parts


def select_generation_result(parts: Sequence[ResponsePart]) -> GenerationResult:
    """Pick the generation result from normalised response parts.

    The first :class:`ImagePart` wins (first match, not best match).  If the
    response contains no image, all text parts are concatenated into a
    :class:`TextFallback`.
    """
    for part in parts:
        if isinstance(part, ImagePart):
            return GeneratedImage(image=part.to_data_uri())
    return TextFallback(text="".join(p.text for p in parts if isinstance(p, TextPart)))


def image_to_part(data_uri: str) -> types.Part:
    """Convert a data-URI image into an inline SDK part."""
    mime_type, data = decode_data_uri(data_uri)
    return types.Part.from_bytes(data=data, mime_type=mime_type)


def create_genai_client(config: StudioConfig) -> genai.Client:
    """Create a Gemini API client from configuration.

    Raises:
        UpstreamError: If no API key is configured.
    """
    if not config.gemini_api_key:
        raise UpstreamError("GEMINI_API_KEY is missing in environment variables.")
    return genai.Client(
        api_key=config.gemini_api_key,
        http_options=types.HttpOptions(timeout=config.request_timeout * 1000),
    )


def _summarise(text: str, limit: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


# ---------------------------------------------------------------------------
# Gateways.
# ---------------------------------------------------------------------------


class _ModelGateway:
    """Shared client handling for the gateways.

    The client is created on first use so the application can start (and
    serve its local data) without an API key configured.

    Args:
        config: Application configuration.
        client: Optional pre-built client, mainly for tests.
    """

    def __init__(self, config: StudioConfig, client: genai.Client | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = create_genai_client(self._config)
        return self._client


class StyleExtractionGateway(_ModelGateway):
    """Extract a textual style descriptor from reference images."""

    def extract_style(self, images: Sequence[str], instruction: str | None = None) -> str:
        """Ask the analysis model to describe the shared style of *images*.

        Args:
            images: Data-URI reference images.  Must be non-empty; no other
                minimum is enforced here.
            instruction: Optional custom rules to weigh into the descriptor.

        Returns:
            The model's text, verbatim.  No trimming, validation or length
            limit is applied.

        Raises:
            ValidationError: If no images are given or one is malformed.
            ExtractionFailed: If the call fails or returns no text.
        """
        if not images:
            raise ValidationError("Missing style images")

        contents: list[types.Part] = [image_to_part(uri) for uri in images]
        contents.append(types.Part.from_text(text=build_extraction_prompt(instruction)))

        client = self.client
        model = self._config.extraction_model
        logger.info(f"Extracting style from {len(images)} image(s) with {model}")

        try:
            response = client.models.generate_content(model=model, contents=contents)
        except Exception as e:
            logger.error(f"Style extraction call failed: {e}")
            raise ExtractionFailed(str(e) or "Style extraction failed.") from e

        text = response.text
        if not text:
            logger.warning("Style extraction returned no text")
            raise ExtractionFailed("AI failed to generate a descriptor.")

        logger.info(f"Extracted style descriptor: {_summarise(text)}")
        return text


class ImageGenerationGateway(_ModelGateway):
    """Generate an image constrained to a style descriptor."""

    def generate(
        self,
        descriptor: str,
        model_id: str,
        aspect_ratio: str | None = None,
        instruction: str | None = None,
        reference_image: str | None = None,
    ) -> GenerationResult:
        """Render a new image in the style described by *descriptor*.

        A *reference_image* selects image-conditioned mode (redraw its exact
        structure in the style); without one the model synthesises from the
        instruction alone.

        Args:
            descriptor: Style descriptor text.  Required.
            model_id: Image model identifier.  Required.
            aspect_ratio: Requested aspect ratio, ``"1:1"`` if omitted.
            instruction: Optional custom instruction.
            reference_image: Optional data-URI reference image.

        Returns:
            :class:`GeneratedImage` or :class:`TextFallback`.

        Raises:
            ValidationError: If a required field is missing or the reference
                image is malformed.
            GenerationFailed: If the call fails.
        """
        if not descriptor or not model_id:
            raise ValidationError("Missing required fields")

        contents: list[types.Part] = []
        if reference_image:
            contents.append(image_to_part(reference_image))
        prompt = build_generation_prompt(
            descriptor,
            aspect_ratio,
            instruction,
            with_reference=bool(reference_image),
        )
        contents.append(types.Part.from_text(text=prompt))

        client = self.client
        mode = "image-conditioned" if reference_image else "text-only"
        logger.info(f"Generating {mode} render with {model_id} ({aspect_ratio or '1:1'})")
        logger.debug(f"Style descriptor: {_summarise(descriptor)}")

        try:
            response = client.models.generate_content(
                model=model_id,
                contents=contents,
                config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
            )
        except Exception as e:
            logger.error(f"Image generation call failed: {e}")
            raise GenerationFailed(str(e) or "Image generation failed.") from e

        result = select_generation_result(response_parts(response))
        if isinstance(result, TextFallback):
            logger.warning(f"No image returned by {model_id}; text: {_summarise(result.text)}")
        return result
