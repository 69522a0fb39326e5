from __future__ import annotations

import asyncio
from datetime import datetime
from types import SimpleNamespace

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.database import Base, get_db
from app.services.login_service import LoginService, get_login_service
from app.utils.auth import verify_token


def test_verify_code_returns_token(call, login_service) -> None:
    login_service.user = SimpleNamespace(
        id=7,
        username=None,
        avatar_url=None,
        wechat_openid="openid-7",
        created_at=datetime(2024, 1, 1),
    )

    response = call("POST", "/login/verify", json={"code": "123456"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["wechat_openid"] == "openid-7"
    payload = verify_token(data["token"])
    assert payload["sub"] == "7"
    assert payload["openid"] == "openid-7"


def test_verify_code_rejected(call) -> None:
    response = call("POST", "/login/verify", json={"code": "000000"})
    assert response.status_code == 400


def test_verify_token_invalid() -> None:
    assert verify_token("not-a-token", raise_on_error=False) is None


def test_subscribe_pushes_verify_code(web_app, qr_helper) -> None:
    async def run() -> httpx.Response:
        transport = httpx.ASGITransport(app=web_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            task = asyncio.create_task(client.get("/login/subscribe"))
            for _ in range(200):
                if qr_helper._pending:
                    break
                await asyncio.sleep(0.01)
            code = next(iter(qr_helper._pending))
            assert qr_helper.login(code, "654321")
            return await task

    response = asyncio.run(run())

    assert response.headers["content-type"].startswith("text/event-stream")
    events = [line for line in response.text.split("\n\n") if line]
    assert events[0].startswith("data: init#")
    assert events[1] == "data: login#654321"
    assert not qr_helper._pending


def test_subscribe_refresh_on_expiry(web_app, qr_helper) -> None:
    qr_helper.expire_seconds = 0.1

    async def run() -> httpx.Response:
        transport = httpx.ASGITransport(app=web_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            return await client.get("/login/subscribe")

    response = asyncio.run(run())

    events = [line for line in response.text.split("\n\n") if line]
    assert events[-1] == "data: refresh#"
    assert not qr_helper._pending


def test_concurrent_verify_with_one_code(web_app) -> None:
    async def run() -> list:
        engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)

        async def db_session():
            async with session_factory() as session:
                yield session

        web_app.dependency_overrides[get_db] = db_session
        web_app.dependency_overrides[get_login_service] = get_login_service
        try:
            async with session_factory() as db:
                code = await LoginService.get_verify_code(db, "openid-1")

            transport = httpx.ASGITransport(app=web_app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                return await asyncio.gather(
                    client.post("/login/verify", json={"code": code}),
                    client.post("/login/verify", json={"code": code}),
                )
        finally:
            await engine.dispose()

    responses = asyncio.run(run())

    assert sorted(r.status_code for r in responses) == [200, 400]
