"""Shared fixtures for the image upscaler tests."""

import os

import boto3
import httpx
import pytest
from moto import mock_aws

from image_upscaler.core.archive import ArchiveService, CleanupManager
from image_upscaler.core.config import get_settings
from image_upscaler.core.models import ProcessingSettings
from image_upscaler.core.services import (
    BatchOrchestrator,
    ItemProcessingService,
    UpscaleService,
)
from image_upscaler.testing.fakes import (
    FakeArtifactStore,
    FakeLogger,
    FakeUpscaleProvider,
)

TEST_BUCKET = "upscaler-test-bucket"
UNSET_ENV = ("REPLICATE_API_TOKEN", "LOG_LEVEL", "LOG_FORMAT")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials and settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("UPSCALER_") or name in UNSET_ENV:
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_store():
    return FakeArtifactStore()


@pytest.fixture
def fake_logger():
    return FakeLogger()


@pytest.fixture
def fake_provider():
    return FakeUpscaleProvider()


@pytest.fixture
def unreachable_http():
    """HTTP client that fails every request it is given."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network disabled in tests", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def resize_only():
    return ProcessingSettings(max_dimension=64, enable_upscaling=False)


@pytest.fixture
def make_orchestrator(fake_store, fake_logger, unreachable_http):
    """Build an orchestrator over the fakes; provider and concurrency vary per test."""

    def _make(provider=None, concurrency=1, http_client=None, timeout_seconds=5.0):
        http = http_client or unreachable_http
        return BatchOrchestrator(
            item_service=ItemProcessingService(fake_store),
            upscale_service=UpscaleService(
                provider or FakeUpscaleProvider(),
                fake_store,
                http,
                timeout_seconds=timeout_seconds,
            ),
            logger=fake_logger,
            concurrency=concurrency,
        )

    return _make


@pytest.fixture
def archive_service(fake_store, fake_logger, unreachable_http):
    return ArchiveService(fake_store, unreachable_http, fake_logger)


@pytest.fixture
def cleanup_manager(fake_store, fake_logger):
    return CleanupManager(fake_store, fake_logger, grace_delay_seconds=0)


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def aws_mock(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture
def s3_client(aws_mock):
    client = boto3.client("s3", region_name="us-east-1")
    client.create_bucket(Bucket=TEST_BUCKET)
    return client
