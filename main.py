"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import checkout as checkout_routes
from api.routes import payment_methods as payment_method_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.checkout_service import CheckoutOrchestrator
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.external.payments import ProviderRegistry


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


async def _build_orchestrator(registry: ProviderRegistry) -> CheckoutOrchestrator:
    """组合根：根据 PAYMENT_STORE 选择持久化实现"""
    if settings.PAYMENT_STORE == "memory":
        from infrastructure.repositories.memory import (
            InMemoryOrderPaymentRepository,
            InMemoryPaymentMethodRepository,
        )
        logger.info("payment_store_selected", store="memory")
        return CheckoutOrchestrator(
            registry,
            InMemoryOrderPaymentRepository(),
            InMemoryPaymentMethodRepository(),
        )

    from infrastructure.database import AsyncSessionLocal, create_tables
    from infrastructure.repositories.payment_repository import (
        SQLAlchemyOrderPaymentRepository,
        SQLAlchemyPaymentMethodRepository,
    )

    # 开发环境自动建表，生产环境应由迁移脚本负责
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    logger.info("payment_store_selected", store="sqlalchemy")
    return CheckoutOrchestrator(
        registry,
        SQLAlchemyOrderPaymentRepository(AsyncSessionLocal),
        SQLAlchemyPaymentMethodRepository(AsyncSessionLocal),
    )


def create_app(orchestrator: Optional[CheckoutOrchestrator] = None) -> FastAPI:
    """
    创建应用

    Args:
        orchestrator: 预先构建的结账编排器（测试注入桩提供商时使用）；
            为空时在 lifespan 中按配置构建
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        if orchestrator is not None:
            app.state.checkout_orchestrator = orchestrator
        else:
            registry = ProviderRegistry.default()
            app.state.checkout_orchestrator = await _build_orchestrator(registry)
        logger.info(
            "payments_initialized",
            providers=[p.value for p in app.state.checkout_orchestrator.registry.registered()],
        )

        yield

        await app.state.checkout_orchestrator.aclose()
        logger.info("application_shutdown", message="Application shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="店铺结账支付服务：多支付提供商统一抽象",
    )

    # 添加中间件（注意顺序：从下往上执行）
    # 1. Request ID中间件（最先执行，为后续中间件提供request_id）
    app.add_middleware(RequestIDMiddleware)

    # 2. 日志中间件（依赖request_id）
    app.add_middleware(LoggingMiddleware)

    # 3. CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册全局异常处理器
    register_exception_handlers(app)

    # 注册路由
    app.include_router(checkout_routes.router, prefix="/api/v1")
    app.include_router(payment_method_routes.router, prefix="/api/v1")

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "docs": "/docs",
                "redoc": "/redoc"
            },
            message="Welcome"
        )

    @app.get("/health", tags=["Health"])
    @app.get("/api/v1/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        """健康检查端点"""
        return success_response(data={"status": "healthy"}, message="OK")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
