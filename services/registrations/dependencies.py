"""Construcción de servicios por request para FastAPI"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from shared.cache.redis_client import RedisCache, get_cache
from shared.database.session import get_db
from services.registrations.services.qr_code_service import QrCodeService
from services.registrations.services.registration_service import RegistrationService
from services.registrations.stores.sqlalchemy_store import SqlAlchemyReferenceStore, SqlAlchemyRegistrationStore


def get_qr_code_service() -> QrCodeService:
    return QrCodeService(settings.QR_UPLOAD_DIR)


def get_reference_store(db: AsyncSession = Depends(get_db)) -> SqlAlchemyReferenceStore:
    return SqlAlchemyReferenceStore(db)


def get_registration_service(
    db: AsyncSession = Depends(get_db),
    qr_codes: QrCodeService = Depends(get_qr_code_service),
    cache: RedisCache = Depends(get_cache),
) -> RegistrationService:
    return RegistrationService(
        references=SqlAlchemyReferenceStore(db),
        registrations=SqlAlchemyRegistrationStore(db),
        qr_codes=qr_codes,
        cache=cache,
    )
