import os
import uuid
from collections.abc import Callable, Generator
from typing import Any

import psycopg
import pytest

from papierkraken.config.settings import Settings
from papierkraken.database.connection import apply_schema, close_pool, get_connection, init_pool
from papierkraken.database.models import DocumentRecord, NewDocument
from papierkraken.database.repositories.document_repository import DocumentRepository


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "papierkraken_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def owner_id() -> int:
    """A fresh owner per test so listings never see rows from other tests."""
    return uuid.uuid4().int % 1_000_000_000 + 1_000_000


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[int], None, None]:
    document_ids: list[int] = []
    yield document_ids
    if not document_ids:
        return
    with get_connection() as conn:
        conn.execute("DELETE FROM documents WHERE id = ANY(%s)", (document_ids,))
        conn.commit()


@pytest.fixture
def seed_document(
    integration_cleanup: list[int],
    owner_id: int,
) -> Callable[..., DocumentRecord]:
    repo = DocumentRepository()

    def _seed(name: str = "invoice.pdf", is_offline: bool = False) -> DocumentRecord:
        record = repo.create_processing(
            NewDocument(
                owner_id=owner_id,
                storage_key=f"users/test/{owner_id}/documents/{uuid.uuid4().hex}-{name}",
                original_name=name,
                mime_type="application/pdf",
                byte_size=1024,
                is_offline=is_offline,
            )
        )
        integration_cleanup.append(record.id)
        return record

    return _seed
