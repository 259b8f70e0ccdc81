"""API principal - Punto de entrada de la aplicación"""
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse
import os
import logging
from contextlib import asynccontextmanager

from app.core.config import settings
from shared.database.connection import init_db, close_db
from shared.cache.redis_client import init_redis, close_redis
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from shared.utils.responses import (
    http_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    # Startup
    logger.info("Iniciando aplicación...")
    await init_db()
    await init_redis()
    logger.info("Aplicación iniciada")
    yield
    # Shutdown
    logger.info("Cerrando aplicación...")
    await close_db()
    await close_redis()
    logger.info("Aplicación cerrada")


# Crear aplicación FastAPI
app = FastAPI(
    title="Eventgate API",
    description="Backend API para registro a eventos con control de capacidad y códigos QR",
    version="1.0.0",
    lifespan=lifespan
)

# En desarrollo, permitir todos los orígenes para facilitar testing
if settings.APP_ENV == "development":
    logger.info("Modo desarrollo: CORS configurado para permitir todos los orígenes")
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = settings.cors_origins_list
    allow_credentials = True  # La cookie access_token viaja con credentials
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=3600,
)

# Rate limiting y handlers de errores con el sobre estándar
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Archivos QR generados
os.makedirs(settings.QR_UPLOAD_DIR, exist_ok=True)
app.mount(settings.QR_PUBLIC_PATH, StaticFiles(directory=settings.QR_UPLOAD_DIR), name="qrcodes")

# Incluir routers de cada servicio
from services.registrations.routes.registrations import router as registrations_router
from services.ticket_validation.routes.validation import router as validation_router
from services.event_management.routes.ticket_types import router as ticket_types_router

app.include_router(validation_router, prefix="/api/v1/registrations", tags=["check-in"])
app.include_router(registrations_router, prefix="/api/v1/registrations", tags=["registrations"])
app.include_router(ticket_types_router, prefix="/api/v1/ticket-types", tags=["ticket-types"])


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "service": "eventgate-api"}


@app.get("/ready")
async def ready():
    """Ready check endpoint - verifica conexiones"""
    from sqlalchemy import text
    from redis.exceptions import RedisError
    from sqlalchemy.exc import SQLAlchemyError
    from shared.database import connection
    from shared.cache.redis_client import get_redis

    try:
        if connection.async_session_maker is None:
            raise RuntimeError("database not initialized")
        async with connection.async_session_maker() as session:
            await session.execute(text("SELECT 1"))

        redis = await get_redis()
        if redis is not None:
            await redis.ping()

        return {"status": "ready", "database": "connected", "redis": "connected" if redis else "disabled"}
    except (SQLAlchemyError, RedisError, OSError, RuntimeError) as e:
        logger.error(f"Ready check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
