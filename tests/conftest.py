"""Pytest configuration and fixtures.

Loads environment variables from .env file for local testing.
Provides fixtures for both unit and integration tests.
"""

import io
import os
import sys
from collections.abc import Callable
from pathlib import Path
from uuid import uuid4

import pytest

# Add src/functions to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src" / "functions"))

TEMPLATE_DIR = Path(__file__).parent.parent / "src" / "functions" / "templates"

TEST_CONNECTION_STRING = (
    "DefaultEndpointsProtocol=https;AccountName=teststorage;"
    "AccountKey=dGVzdGtleQ==;EndpointSuffix=core.windows.net"
)


def pytest_configure(config):
    """Load .env file and configure pytest markers before tests run."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests requiring Azure resources"
    )
    config.addinivalue_line("markers", "slow: marks tests as slow running")

    try:
        from dotenv import load_dotenv

        env_path = Path(__file__).parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            print(f"\n[OK] Loaded environment from {env_path}")
    except ImportError:
        pass  # python-dotenv not installed, skip


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION_TESTS is set."""
    if os.getenv("RUN_INTEGRATION_TESTS"):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled. Set RUN_INTEGRATION_TESTS=1 to enable."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached config and services between tests."""
    from config import reset_config
    from services import reset_services

    reset_config()
    reset_services()
    yield
    reset_config()
    reset_services()


@pytest.fixture
def base_env() -> dict[str, str]:
    """Minimal valid environment for Config.from_environment()."""
    return {
        "GOTENBERG_URL": "http://gotenberg:3000/forms/chromium/convert/html",
        "AZURE_STORAGE_CONNECTION_STRING": TEST_CONNECTION_STRING,
    }


@pytest.fixture
def make_config(base_env) -> Callable[..., "object"]:
    """Build a Config from the base environment with field overrides."""
    from dataclasses import replace
    from unittest.mock import patch

    from config import Config

    def _make(**overrides):
        with patch.dict(os.environ, base_env, clear=True):
            config = Config.from_environment()
        return replace(config, template_dir=str(TEMPLATE_DIR), **overrides)

    return _make


@pytest.fixture
def jpeg_bytes() -> Callable[..., bytes]:
    """Factory for small in-memory images."""
    from PIL import Image

    def _make(width: int = 64, height: int = 48, fmt: str = "JPEG", mode: str = "RGB") -> bytes:
        image = Image.new(mode, (width, height), color="red" if mode == "RGB" else None)
        output = io.BytesIO()
        image.save(output, format=fmt)
        return output.getvalue()

    return _make


@pytest.fixture
def pdf_bytes() -> bytes:
    """A valid two-page PDF."""
    from pypdf import PdfWriter

    writer = PdfWriter()
    writer.add_blank_page(width=595, height=842)
    writer.add_blank_page(width=595, height=842)
    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


@pytest.fixture
def template_dir() -> Path:
    """Directory holding the shipped templates."""
    return TEMPLATE_DIR


# ============================================================================
# Integration Test Fixtures
# ============================================================================


@pytest.fixture
def env_vars():
    """Fixture to check required environment variables.

    Use this fixture in integration tests that need real Azure resources.
    """
    required = ["GOTENBERG_URL", "AZURE_STORAGE_CONNECTION_STRING"]

    missing = [var for var in required if not os.getenv(var)]

    if missing:
        pytest.skip(f"Missing required environment variables: {', '.join(missing)}")

    return {var: os.getenv(var) for var in required}


@pytest.fixture
def unique_report_id() -> str:
    """Generate a unique report id for isolation."""
    return f"test_{uuid4().hex[:8]}"
