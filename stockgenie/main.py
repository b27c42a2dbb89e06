"""
StockGenie 数据服务
FastAPI 应用入口

启动方式:
    uvicorn stockgenie.main:app --host 0.0.0.0 --port 8080
    python -m stockgenie.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stockgenie import __version__
from stockgenie.config import settings
from stockgenie.db import close_connections, init_mongodb, init_redis
from stockgenie.layers.store import MongoBarStore, get_bar_store
from stockgenie.routers import cache, health, llm, rate_limit, stocks, technical

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "StockGenie DataService"


def _log_banner() -> None:
    provider_cfg = settings.provider_config()
    rows = [
        ("MongoDB", f"{settings.MONGODB_HOST}:{settings.MONGODB_PORT}/{settings.MONGODB_DATABASE}"),
        ("Redis", f"{settings.REDIS_HOST}:{settings.REDIS_PORT}"),
        ("Provider", f"{provider_cfg.name} (configured={provider_cfg.has_credentials})"),
        ("LLM", f"{settings.LLM_BASE_URL} ({settings.LLM_MODEL})"),
    ]
    logger.info(f"🚀 {SERVICE_NAME} v{__version__} 启动中")
    for label, value in rows:
        logger.info(f"   {label:<9}: {value}")
    if not provider_cfg.has_credentials:
        logger.warning(f"⚠️ {provider_cfg.name} 未配置有效 API Key，行情将使用模拟数据")


async def _prepare_store() -> None:
    """MongoDB 可用时建立 (symbol, date) 唯一索引"""
    store = get_bar_store()
    if not isinstance(store, MongoBarStore):
        return
    try:
        await store.ensure_indexes()
    except Exception as exc:
        logger.warning(f"⚠️ 创建 MongoDB 索引失败: {exc}")


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    _log_banner()

    # 存储后端不可用时降级运行，不阻断启动
    mongo_ok = await init_mongodb()
    redis_ok = await init_redis()
    logger.info(
        f"K 线存储: {'MongoDB' if mongo_ok else '进程内存'}，"
        f"结果缓存: {'Redis' if redis_ok else '文件'}"
    )
    await _prepare_store()

    yield

    await close_connections()
    logger.info(f"✅ {SERVICE_NAME} 已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="StockGenie 数据服务",
    description=(
        "股票行情与分析微服务：\n"
        "- 📊 日线行情（Alpha Vantage；限流、去重、重试，失败时返回模拟数据）\n"
        "- 📈 SMA / EMA / RSI / MACD / OBV 与交易信号\n"
        "- 🤖 本地大模型分析（Ollama）\n"
        "- 🗄️ MongoDB 持久化，Redis / 文件结果缓存"
    ),
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} 未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


for module in (health, stocks, technical, rate_limit, llm, cache):
    app.include_router(module.router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": SERVICE_NAME,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "stockgenie.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
