from __future__ import annotations

import asyncio
from datetime import timedelta
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.models.login_code import LoginCode
from app.models.user import User
from app.services.login_service import LoginService, _utcnow


def test_verify_code_issued_and_reused(run_with_db) -> None:
    async def scenario(db):
        first = await LoginService.get_verify_code(db, "openid-1")
        again = await LoginService.get_verify_code(db, "openid-1")
        other = await LoginService.get_verify_code(db, "openid-2")
        return first, again, other

    first, again, other = run_with_db(scenario)

    assert first.isdigit() and len(first) == settings.LOGIN_CODE_LENGTH
    assert again == first
    assert other != first


def test_expired_code_replaced(run_with_db) -> None:
    async def scenario(db):
        await LoginService.get_verify_code(db, "openid-1")
        await db.execute(
            update(LoginCode).values(expire_at=_utcnow() - timedelta(seconds=1))
        )
        await db.commit()

        await LoginService.get_verify_code(db, "openid-1")
        result = await db.execute(select(LoginCode).where(LoginCode.openid == "openid-1"))
        return result.scalars().all()

    rows = run_with_db(scenario)

    assert len(rows) == 1
    assert rows[0].expire_at > _utcnow()


def test_login_by_verify_code(run_with_db) -> None:
    async def scenario(db):
        code = await LoginService.get_verify_code(db, "openid-1")
        user = await LoginService.login_by_verify_code(db, code)
        reused = await LoginService.login_by_verify_code(db, code)

        code2 = await LoginService.get_verify_code(db, "openid-1")
        same_user = await LoginService.login_by_verify_code(db, code2)
        return code, code2, user, reused, same_user

    code, code2, user, reused, same_user = run_with_db(scenario)

    assert user is not None
    assert user.wechat_openid == "openid-1"
    assert reused is None
    assert same_user.id == user.id


def test_login_with_unknown_or_expired_code(run_with_db) -> None:
    async def scenario(db):
        unknown = await LoginService.login_by_verify_code(db, "000000x")

        code = await LoginService.get_verify_code(db, "openid-1")
        await db.execute(
            update(LoginCode).values(expire_at=_utcnow() - timedelta(seconds=1))
        )
        await db.commit()
        expired = await LoginService.login_by_verify_code(db, code)
        return unknown, expired

    assert run_with_db(scenario) == (None, None)


def test_generate_verification_code_length() -> None:
    assert len(LoginService.generate_verification_code(8)) == 8
    assert LoginService.generate_verification_code().isdigit()


def test_login_keywords_from_settings() -> None:
    assert LoginService.LOGIN_CODE_KEY == tuple(settings.LOGIN_KEYWORDS)


def test_issuing_code_logs_only_the_public_call(run_with_db, caplog) -> None:
    caplog.set_level(logging.INFO, logger="app.core.mdc")

    async def scenario(db):
        return await LoginService.get_verify_code(db, "openid-1")

    run_with_db(scenario)

    messages = [r.getMessage() for r in caplog.records if r.name == "app.core.mdc"]
    assert len(messages) == 1
    assert messages[0].startswith("执行耗时: LoginService#get_verify_code = ")


def test_same_code_consumed_once_under_concurrency(run_with_db) -> None:
    async def scenario(db):
        code = await LoginService.get_verify_code(db, "openid-1")
        session_factory = async_sessionmaker(db.bind, expire_on_commit=False)
        async with session_factory() as first, session_factory() as second:
            return await asyncio.gather(
                LoginService.login_by_verify_code(first, code),
                LoginService.login_by_verify_code(second, code),
            )

    results = run_with_db(scenario)

    assert sum(user is not None for user in results) == 1


def test_create_user_race_returns_existing_row(run_with_db, monkeypatch) -> None:
    real_find = LoginService._find_user
    lookups = []

    async def find_after_race(db, openid):
        # 第一次查询时另一个请求尚未提交，模拟两边都没查到用户
        lookups.append(openid)
        if len(lookups) == 1:
            return None
        return await real_find(db, openid)

    async def scenario(db):
        db.add(User(wechat_openid="openid-1", is_active=True, is_deleted=False))
        await db.commit()
        existing_id = (await real_find(db, "openid-1")).id

        monkeypatch.setattr(LoginService, "_find_user", find_after_race)
        user = await LoginService.create_or_get_user(db, "openid-1")
        return existing_id, user.id

    existing_id, user_id = run_with_db(scenario)

    assert user_id == existing_id
    assert len(lookups) == 2
