"""Shared pytest fixtures for Style Studio tests."""

import base64
import io
import shutil
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from google.genai import types
from PIL import Image

from stylestudio.api.main import create_app
from stylestudio.core.config import StudioConfig
from stylestudio.core.gateways import (
    GeneratedImage,
    ImageGenerationGateway,
    StyleExtractionGateway,
)
from stylestudio.core.storage import InMemoryStore, LocalStore
from stylestudio.core.studio import StudioService

EXTRACTED_DESCRIPTOR = "Vibrant neon palette, hot magenta and electric cyan, hard rim lighting."


def image_data_uri(color: tuple[int, int, int], fmt: str = "PNG", size: int = 16) -> str:
    """Build a real image encoded as a data URI.

    Args:
        color: RGB fill colour.
        fmt: Pillow format name (PNG or JPEG).
        size: Edge length in pixels.

    Returns:
        ``data:image/<fmt>;base64,...`` string.
    """
    buffer = io.BytesIO()
    Image.new("RGB", (size, size), color=color).save(buffer, format=fmt)
    payload = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/{fmt.lower()};base64,{payload}"


def model_response(*parts: types.Part) -> types.GenerateContentResponse:
    """Build a Gemini response whose first candidate holds *parts*."""
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> StudioConfig:
    """Create a test configuration with an in-memory store and a dummy key.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        StudioConfig instance for testing
    """
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("STYLESTUDIO_GEMINI_API_KEY", raising=False)
    return StudioConfig(
        _env_file=None,
        gemini_api_key="test-key",
        store_backend="memory",
        data_dir=str(temp_dir / "data"),
    )


@pytest.fixture
def sample_images() -> list[str]:
    """Three distinct PNG style images."""
    return [
        image_data_uri((255, 0, 170)),
        image_data_uri((0, 240, 255)),
        image_data_uri((20, 10, 40)),
    ]


@pytest.fixture
def reference_image() -> str:
    """A JPEG reference image for renders."""
    return image_data_uri((120, 130, 140), fmt="JPEG")


@pytest.fixture
def output_image() -> str:
    """The image a mocked generation gateway returns."""
    return image_data_uri((250, 20, 200))


@pytest.fixture
def store() -> LocalStore:
    """Empty in-memory LocalStore."""
    return LocalStore(InMemoryStore())


@pytest.fixture
def extractor() -> MagicMock:
    """Mock extraction gateway returning :data:`EXTRACTED_DESCRIPTOR`."""
    gateway = MagicMock(spec=StyleExtractionGateway)
    gateway.extract_style.return_value = EXTRACTED_DESCRIPTOR
    return gateway


@pytest.fixture
def generator(output_image: str) -> MagicMock:
    """Mock generation gateway returning ``output_image``."""
    gateway = MagicMock(spec=ImageGenerationGateway)
    gateway.generate.return_value = GeneratedImage(image=output_image)
    return gateway


@pytest.fixture
def service(test_config, store, extractor, generator) -> StudioService:
    """StudioService wired to the in-memory store and mocked gateways."""
    return StudioService(test_config, store, extractor, generator)


@pytest.fixture
def test_client(service: StudioService) -> Generator[TestClient, None, None]:
    """FastAPI TestClient over an app using the test service."""
    with TestClient(create_app(service=service)) as client:
        yield client
