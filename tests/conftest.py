from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Tuple

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.db.database import Base, get_db
from app.services.login_service import get_login_service
from app.services.qr_login_helper import QrLoginHelper, get_qr_login_helper


class FakeLoginService:
    """只记录调用的登录服务"""

    LOGIN_CODE_KEY: Tuple[str, ...] = ("login", "登录")

    def __init__(self, verify_code: str = "123456") -> None:
        self.verify_code = verify_code
        self.calls: List[str] = []
        self.user: Any = None

    async def get_verify_code(self, db: Any, openid: str) -> str:
        self.calls.append(openid)
        return self.verify_code

    async def login_by_verify_code(self, db: Any, code: str) -> Any:
        if code == self.verify_code:
            return self.user
        return None


async def _no_db():
    yield None


@pytest.fixture
def login_service() -> FakeLoginService:
    return FakeLoginService()


@pytest.fixture
def qr_helper() -> QrLoginHelper:
    return QrLoginHelper(code_length=4, expire_seconds=60)


@pytest.fixture
def web_app(login_service: FakeLoginService, qr_helper: QrLoginHelper):
    from main import app

    app.dependency_overrides[get_db] = _no_db
    app.dependency_overrides[get_login_service] = lambda: login_service
    app.dependency_overrides[get_qr_login_helper] = lambda: qr_helper
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def call(web_app) -> Callable[..., httpx.Response]:
    """同步地向应用发一个请求"""

    def _call(method: str, url: str, **kwargs: Any) -> httpx.Response:
        async def run() -> httpx.Response:
            transport = httpx.ASGITransport(app=web_app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                return await client.request(method, url, **kwargs)

        return asyncio.run(run())

    return _call


@pytest.fixture
def run_with_db() -> Callable[[Callable[[Any], Awaitable[Any]]], Any]:
    """在内存SQLite上建表并执行一段异步逻辑"""

    def _run(fn: Callable[[Any], Awaitable[Any]]) -> Any:
        async def run() -> Any:
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = async_sessionmaker(engine, expire_on_commit=False)
            try:
                async with session_factory() as db:
                    return await fn(db)
            finally:
                await engine.dispose()

        return asyncio.run(run())

    return _run
