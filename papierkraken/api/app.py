from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from papierkraken.access.broker import build_access_broker
from papierkraken.api.dependencies import AppServices
from papierkraken.api.errors import register_exception_handlers
from papierkraken.api.routes.documents import router as documents_router
from papierkraken.config.settings import Settings
from papierkraken.database.connection import apply_schema, close_pool, init_pool
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.ingestion.processor import build_ingestion_service
from papierkraken.ingestion.staging import UploadStager
from papierkraken.ingestion.validator import build_upload_validator
from papierkraken.logging.logger import Log
from papierkraken.storage.s3_adapter import build_object_storage, create_s3_client


def build_app_services(settings: Settings) -> AppServices:
    """Wire storage, broker, repository and the ingestion pipeline from settings."""
    client = create_s3_client(settings)
    storage = build_object_storage(settings, client)
    broker = build_access_broker(settings, client)
    doc_repo = DocumentRepository()
    validator = build_upload_validator(settings)
    stager = UploadStager(Path(settings.staging_dir))
    ingestion = build_ingestion_service(
        settings,
        storage,
        broker,
        doc_repo=doc_repo,
        validator=validator,
        stager=stager,
    )
    return AppServices(
        settings=settings,
        storage=storage,
        broker=broker,
        doc_repo=doc_repo,
        validator=validator,
        stager=stager,
        ingestion=ingestion,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app. Pool and services are created in the lifespan."""
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_pool(settings)
        try:
            apply_schema()
            app.state.services = build_app_services(settings)
            Log.info(f"API ready ({settings.app_env})")
            yield
        finally:
            close_pool()

    app = FastAPI(title="PapierKraken ingest", lifespan=lifespan)
    app.state.settings = settings
    register_exception_handlers(app)
    app.include_router(documents_router)
    return app
