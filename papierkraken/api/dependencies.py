from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from papierkraken.access.broker import AccessBroker
from papierkraken.config.settings import Settings
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.errors import AuthError
from papierkraken.ingestion.processor import IngestionService
from papierkraken.ingestion.staging import UploadStager
from papierkraken.ingestion.validator import UploadValidator
from papierkraken.storage.base import BaseObjectStorage

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller. ``owner_id`` scopes every storage key and query."""

    owner_id: int


@dataclass
class AppServices:
    settings: Settings
    storage: BaseObjectStorage
    broker: AccessBroker
    doc_repo: DocumentRepository
    validator: UploadValidator
    stager: UploadStager
    ingestion: IngestionService


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ingestion_service(services: AppServices = Depends(get_services)) -> IngestionService:
    return services.ingestion


def get_document_repository(
    services: AppServices = Depends(get_services),
) -> DocumentRepository:
    return services.doc_repo


def get_access_broker(services: AppServices = Depends(get_services)) -> AccessBroker:
    return services.broker


def get_object_storage(services: AppServices = Depends(get_services)) -> BaseObjectStorage:
    return services.storage


def get_upload_validator(services: AppServices = Depends(get_services)) -> UploadValidator:
    return services.validator


def get_upload_stager(services: AppServices = Depends(get_services)) -> UploadStager:
    return services.stager


def decode_token(token: str, settings: Settings) -> Identity:
    """Verify a bearer token and return the caller identity.

    Raises:
        AuthError: 403 if the token is invalid, expired or carries no user id.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        raise AuthError("Invalid or expired token", status_code=403) from exc
    raw_id = payload.get("id", payload.get("sub"))
    try:
        return Identity(owner_id=int(raw_id))
    except (TypeError, ValueError) as exc:
        raise AuthError("Token carries no user id", status_code=403) from exc


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise AuthError("Access token required")
    return decode_token(credentials.credentials, settings)
