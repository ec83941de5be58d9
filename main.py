"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import notifications as notifications_routes
from api.routes import payments as payments_routes
from api.routes import ws as ws_routes
from application.ports.realtime import RealtimeBrokerPort
from application.services.realtime_service import RealtimeService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.bootstrap import build_payment_stack
from infrastructure.cache import (
    InMemoryPendingPaymentStore,
    RedisCache,
    RedisPendingPaymentStore,
    init_redis_cache,
    shutdown_redis_cache,
)
from infrastructure.database import create_tables, engine
from infrastructure.external.push import WebPushSender
from infrastructure.realtime.brokers import InMemoryRealtimeBroker, RedisRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionManager
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


def _select_broker(cache: Optional[RedisCache]) -> RealtimeBrokerPort:
    """REALTIME_BROKER: auto -> redis(若可用) 否则 inmemory"""
    provider = (settings.REALTIME_BROKER or "auto").lower()
    if provider in ("redis", "auto") and cache is not None:
        logger.info("realtime_broker_selected", provider="redis")
        return RedisRealtimeBroker(cache)
    if provider == "redis":
        logger.warning("realtime_broker_redis_missing_url", message="REDIS__URL not set, falling back to in-memory broker")
    logger.info("realtime_broker_selected", provider="inmemory")
    return InMemoryRealtimeBroker()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    cache = None
    if settings.redis.url:
        try:
            cache = await init_redis_cache()
            logger.info("redis_cache_initialized", message="Redis cache initialized")
        except Exception as exc:
            logger.error("redis_cache_init_failed", error=str(exc))

    ttl = payment_settings.tracking.breadcrumb_ttl_s
    pending_store = RedisPendingPaymentStore(cache, ttl) if cache is not None else InMemoryPendingPaymentStore(ttl)

    email_scheduler = None
    if settings.redis.url:
        # Celery 需要 broker，未配置 Redis 时不投递邮件任务
        from infrastructure.tasks.utils.dispatcher import TaskDispatcher

        email_scheduler = TaskDispatcher().send_payment_email

    broker = _select_broker(cache)
    push_sender = WebPushSender()
    stack = build_payment_stack(
        uow_factory=SQLAlchemyUnitOfWork,
        broker=broker,
        pending_store=pending_store,
        push_sender=push_sender,
        email_scheduler=email_scheduler,
    )
    conn_mgr = ConnectionManager()
    realtime = RealtimeService(broker=broker, connections=conn_mgr, uow_factory=SQLAlchemyUnitOfWork)
    await broker.subscribe(realtime.on_broker_event)

    app.state.payment_stack = stack
    app.state.realtime_broker = broker
    app.state.realtime_connections = conn_mgr
    app.state.realtime_service = realtime
    logger.info("payment_stack_initialized", realtime_broker=type(broker).__name__, push=push_sender.configured)

    yield

    # 关闭时的清理工作
    await broker.unsubscribe(realtime.on_broker_event)
    await broker.aclose()
    await push_sender.aclose()
    if cache is not None:
        await shutdown_redis_cache()
        logger.info("redis_cache_shutdown", message="Redis cache shutdown")
    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Izy-Scoly 支付对账服务：发起支付、回调对账、实时跟踪与通知",
    redoc_url="/redoc",
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
app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(notifications_routes.router, prefix="/api/v1")
app.include_router(ws_routes.router, prefix="/api/v1")


# 根路径
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
        message="Bienvenue sur l'API de paiement Izy-Scoly",
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
