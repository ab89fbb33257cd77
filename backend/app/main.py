"""
HotelSuite 主应用入口
多租户酒店管理后端：预订生命周期、账单流水与发票对账
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.config import settings
from app.database import init_db
from app.routers import auth, rooms, bookings, folios, invoices
from app.services.exceptions import DomainError

logger = logging.getLogger(__name__)


def setup_logging(level: str = None) -> None:
    """配置根日志"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging()

    # 初始化数据库
    init_db()

    # 注册事件处理器
    from app.services.event_handlers import register_event_handlers
    register_event_handlers()

    logger.info(f"{settings.APP_NAME} started")
    yield


# 创建应用
app = FastAPI(
    title=f"{settings.APP_NAME} - 酒店管理系统",
    description="预订、入住、账单与发票管理",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== 异常处理 ==============

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """业务异常 -> HTTP 响应"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """请求校验失败统一返回 400，附带字段级明细"""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "")
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation error", "errors": errors}
    )


# 注册路由
app.include_router(auth.router)
app.include_router(rooms.router)
app.include_router(bookings.router)
app.include_router(folios.router)
app.include_router(invoices.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "description": "Booking & folio reconciliation backend"
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
