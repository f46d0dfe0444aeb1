"""
Shared test fixtures and pytest configuration.

The settings singleton is built at import time and refuses to start
without its secrets, so dummy values are exported here before any
``silo`` module is imported.
"""

import os

os.environ.setdefault("GOOGLE_API_KEY", "test-google-key-0000")
os.environ.setdefault("OBJECT_STORE_ACCESS_KEY", "test-access-key")
os.environ.setdefault("OBJECT_STORE_SECRET_KEY", "test-secret-key")

import pytest  # noqa: E402

from fakes import TEST_BUCKET, FakeS3Client, factory_for  # noqa: E402
from silo.src.database.vector_store import SiloVectorStore  # noqa: E402


@pytest.fixture
def s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def store(s3: FakeS3Client) -> SiloVectorStore:
    return SiloVectorStore(client_factory=factory_for(s3), bucket=TEST_BUCKET, prefix="embeddings", timeout_s=1.0, max_workers=4)
