"""
S3 文件库 API 入口

    uvicorn main:app
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.middleware.locale import LocaleMiddleware
from api.routes import access as access_routes
from api.routes import files as files_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.i18n import t
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import create_tables
from infrastructure.external.storage import init_storage_client, shutdown_storage_client

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DEBUG:
        await create_tables()
        logger.info("database_tables_created")
    else:
        logger.info("database_migrations_required", hint="alembic upgrade head")

    # 凭据缺失时照常启动，存储相关接口返回 503
    await init_storage_client()
    try:
        yield
    finally:
        await shutdown_storage_client()
        logger.info("application_shutdown")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="私有 S3 文件库：令牌访问、短时效预签名重定向与存储桶同步",
    )

    # add_middleware 后注册者先执行：RequestID -> Logging -> Locale -> CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(LocaleMiddleware)
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(RequestIDMiddleware)

    register_exception_handlers(application)

    # 访问入口不带 /api/v1 前缀，分享出去的链接更短
    application.include_router(access_routes.router)
    application.include_router(files_routes.router, prefix="/api/v1")

    @application.get("/", tags=["Root"])
    async def root():
        return success_response(
            data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
            message=t("welcome"),
        )

    @application.get("/health", tags=["Health"])
    async def health_check():
        return success_response(data={"status": "healthy"}, message=t("health.ok"))

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
