"""
论坛公众号登录服务 - FastAPI应用主入口
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.core.logger import TRACE_ID_KEY, generate_trace_id, mdc_add, mdc_reset, setup_logging
from app.api import wx, login

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

# 创建FastAPI应用
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="论坛公众号登录后端API",
    docs_url="/docs",
    redoc_url="/redoc"
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.middleware("http")
async def bind_trace_id(request: Request, call_next):
    """为每个请求绑定链路ID，请求内的日志都带上traceId"""
    trace_id = request.headers.get("X-Trace-Id") or generate_trace_id()
    token = mdc_add(TRACE_ID_KEY, trace_id)
    try:
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response
    finally:
        mdc_reset(token)


# 注册路由
app.include_router(wx.router)
app.include_router(login.router)


@app.get("/")
async def root():
    """根路径"""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "message": "论坛公众号登录后端API正在运行"
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
