"""Tests for stylestudio.core.gateways: the Gemini model gateways.

The ``google.genai`` client is replaced by a ``MagicMock`` whose
``models.generate_content`` returns real ``types.GenerateContentResponse``
objects, so response parsing runs against the SDK's own types while no
network access occurs.  Tests cover:

- Response flattening and the first-image-wins selection rule.
- Client creation, timeout and the missing-key error.
- Extraction request layout, model choice and failure mapping.
- Generation request layout for both modes and failure mapping.
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, patch

import pytest
from conftest import EXTRACTED_DESCRIPTOR, model_response
from google.genai import types

from stylestudio.core.errors import (
    ExtractionFailed,
    GenerationFailed,
    UpstreamError,
    ValidationError,
)
from stylestudio.core.gateways import (
    GeneratedImage,
    ImageGenerationGateway,
    ImagePart,
    StyleExtractionGateway,
    TextFallback,
    TextPart,
    create_genai_client,
    response_parts,
    select_generation_result,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png"


def _image_part(data: bytes = PNG_BYTES, mime_type: str = "image/png") -> types.Part:
    return types.Part(inline_data=types.Blob(data=data, mime_type=mime_type))


def _mock_client(response=None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.models.generate_content.side_effect = error
    else:
        client.models.generate_content.return_value = response
    return client


# ---------------------------------------------------------------------------
# Response handling.
# ---------------------------------------------------------------------------


class TestSelectGenerationResult:
    """The pure selection rule over normalised parts."""

    def test_first_image_wins(self):
        parts = [
            TextPart("preamble"),
            ImagePart("image/png", b"first"),
            ImagePart("image/jpeg", b"second"),
        ]
        result = select_generation_result(parts)
        assert result == GeneratedImage(
            image="data:image/png;base64," + base64.b64encode(b"first").decode()
        )

    def test_text_only_is_concatenated(self):
        result = select_generation_result([TextPart("I can't "), TextPart("draw that.")])
        assert result == TextFallback(text="I can't draw that.")

    def test_no_parts_gives_empty_fallback(self):
        assert select_generation_result([]) == TextFallback(text="")

    def test_base64_string_data_is_used_as_is(self):
        result = select_generation_result([ImagePart("image/png", "QUJD")])
        assert result == GeneratedImage(image="data:image/png;base64,QUJD")


class TestResponseParts:
    """Flattening SDK responses into tagged parts."""

    def test_text_and_image(self):
        response = model_response(types.Part.from_text(text="here"), _image_part())
        assert response_parts(response) == [
            TextPart("here"),
            ImagePart("image/png", PNG_BYTES),
        ]

    def test_thought_parts_are_skipped(self):
        response = model_response(
            types.Part(text="thinking...", thought=True),
            types.Part.from_text(text="answer"),
        )
        assert response_parts(response) == [TextPart("answer")]

    def test_no_candidates(self):
        assert response_parts(types.GenerateContentResponse()) == []

    def test_candidate_without_content(self):
        response = types.GenerateContentResponse(candidates=[types.Candidate()])
        assert response_parts(response) == []


# ---------------------------------------------------------------------------
# Client creation.
# ---------------------------------------------------------------------------


class TestCreateClient:
    def test_missing_key_raises(self, test_config):
        cfg = test_config.model_copy(update={"gemini_api_key": None})
        with pytest.raises(UpstreamError, match="GEMINI_API_KEY is missing"):
            create_genai_client(cfg)

    def test_client_uses_key_and_timeout(self, test_config):
        with patch("stylestudio.core.gateways.genai.Client") as client_cls:
            create_genai_client(test_config)
        kwargs = client_cls.call_args.kwargs
        assert kwargs["api_key"] == "test-key"
        assert kwargs["http_options"].timeout == 60_000

    def test_gateway_creates_client_lazily(self, test_config):
        with patch("stylestudio.core.gateways.genai.Client") as client_cls:
            gateway = StyleExtractionGateway(test_config)
            client_cls.assert_not_called()
            assert gateway.client is gateway.client
        client_cls.assert_called_once()

    def test_missing_key_fails_only_on_use(self, test_config, sample_images):
        cfg = test_config.model_copy(update={"gemini_api_key": None})
        gateway = StyleExtractionGateway(cfg)
        with pytest.raises(UpstreamError):
            gateway.extract_style(sample_images)


# ---------------------------------------------------------------------------
# Style extraction.
# ---------------------------------------------------------------------------


class TestStyleExtraction:
    """StyleExtractionGateway.extract_style."""

    def test_returns_text_verbatim(self, test_config, sample_images):
        raw = f"  {EXTRACTED_DESCRIPTOR}\n"
        client = _mock_client(model_response(types.Part.from_text(text=raw)))
        gateway = StyleExtractionGateway(test_config, client=client)

        assert gateway.extract_style(sample_images) == raw

    def test_request_layout(self, test_config, sample_images):
        client = _mock_client(model_response(types.Part.from_text(text="style")))
        gateway = StyleExtractionGateway(test_config, client=client)

        gateway.extract_style(sample_images, "Prefer flat shading.")

        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == test_config.extraction_model
        contents = kwargs["contents"]
        assert len(contents) == len(sample_images) + 1
        assert [c.inline_data.mime_type for c in contents[:-1]] == ["image/png"] * 3
        assert contents[0].inline_data.data == base64.b64decode(sample_images[0].split(",")[1])
        assert "Prefer flat shading." in contents[-1].text

    def test_single_image_is_accepted(self, test_config, sample_images):
        client = _mock_client(model_response(types.Part.from_text(text="style")))
        gateway = StyleExtractionGateway(test_config, client=client)
        assert gateway.extract_style(sample_images[:1]) == "style"

    def test_no_images(self, test_config):
        client = _mock_client()
        gateway = StyleExtractionGateway(test_config, client=client)
        with pytest.raises(ValidationError, match="Missing style images"):
            gateway.extract_style([])
        client.models.generate_content.assert_not_called()

    def test_malformed_image(self, test_config):
        client = _mock_client()
        gateway = StyleExtractionGateway(test_config, client=client)
        with pytest.raises(ValidationError):
            gateway.extract_style(["not-a-data-uri"])
        client.models.generate_content.assert_not_called()

    def test_empty_text_is_failure(self, test_config, sample_images):
        client = _mock_client(model_response(_image_part()))
        gateway = StyleExtractionGateway(test_config, client=client)
        with pytest.raises(ExtractionFailed, match="AI failed to generate a descriptor."):
            gateway.extract_style(sample_images)

    def test_transport_error_is_wrapped(self, test_config, sample_images):
        client = _mock_client(error=RuntimeError("deadline exceeded"))
        gateway = StyleExtractionGateway(test_config, client=client)
        with pytest.raises(ExtractionFailed, match="deadline exceeded"):
            gateway.extract_style(sample_images)


# ---------------------------------------------------------------------------
# Image generation.
# ---------------------------------------------------------------------------


class TestImageGeneration:
    """ImageGenerationGateway.generate."""

    def test_image_conditioned_request(self, test_config, reference_image):
        client = _mock_client(model_response(_image_part()))
        gateway = ImageGenerationGateway(test_config, client=client)

        result = gateway.generate(
            descriptor=EXTRACTED_DESCRIPTOR,
            model_id="model-a",
            aspect_ratio="16:9",
            reference_image=reference_image,
        )

        assert result == GeneratedImage(
            image="data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        )
        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "model-a"
        assert kwargs["config"].response_modalities == ["IMAGE", "TEXT"]
        reference_part, prompt_part = kwargs["contents"]
        assert reference_part.inline_data.mime_type == "image/jpeg"
        assert "REDRAW" in prompt_part.text
        assert EXTRACTED_DESCRIPTOR in prompt_part.text
        assert "Aspect Ratio: 16:9" in prompt_part.text

    def test_text_only_request(self, test_config):
        client = _mock_client(model_response(_image_part()))
        gateway = ImageGenerationGateway(test_config, client=client)

        gateway.generate(EXTRACTED_DESCRIPTOR, "model-b", instruction="a red fox")

        kwargs = client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "model-b"
        (prompt_part,) = kwargs["contents"]
        assert "No reference image is provided" in prompt_part.text
        assert 'Custom Instruction: "a red fox"' in prompt_part.text
        assert "Aspect Ratio: 1:1" in prompt_part.text

    def test_text_answer_is_fallback(self, test_config):
        client = _mock_client(model_response(types.Part.from_text(text="Sorry, no image.")))
        gateway = ImageGenerationGateway(test_config, client=client)
        result = gateway.generate(EXTRACTED_DESCRIPTOR, "model-a", instruction="x")
        assert result == TextFallback(text="Sorry, no image.")

    def test_jpeg_output_keeps_mime_type(self, test_config):
        client = _mock_client(model_response(_image_part(b"jpeg", "image/jpeg")))
        gateway = ImageGenerationGateway(test_config, client=client)
        result = gateway.generate(EXTRACTED_DESCRIPTOR, "model-a", instruction="x")
        assert result.image.startswith("data:image/jpeg;base64,")

    @pytest.mark.parametrize("descriptor, model_id", [("", "model-a"), ("style", "")])
    def test_missing_required_fields(self, test_config, descriptor, model_id):
        client = _mock_client()
        gateway = ImageGenerationGateway(test_config, client=client)
        with pytest.raises(ValidationError, match="Missing required fields"):
            gateway.generate(descriptor, model_id)
        client.models.generate_content.assert_not_called()

    def test_transport_error_is_wrapped(self, test_config):
        client = _mock_client(error=ConnectionError("connection reset"))
        gateway = ImageGenerationGateway(test_config, client=client)
        with pytest.raises(GenerationFailed, match="connection reset"):
            gateway.generate(EXTRACTED_DESCRIPTOR, "model-a", instruction="x")
