"""
登录服务：公众号验证码的下发、复用与核销
"""
import random
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update, and_
from sqlalchemy.exc import IntegrityError
from app.core.config import settings
from app.core.mdc import mdc_dot
from app.models.user import User
from app.models.login_code import LoginCode


def _utcnow() -> datetime:
    """数据库中统一存储不带时区的UTC时间"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _random_digits(length: int) -> str:
    return ''.join([str(random.randint(0, 9)) for _ in range(length)])


@mdc_dot(biz_code=lambda args: args.get("openid") or "login")
class LoginService:
    """登录服务类"""

    # 触发下发验证码的关键词
    LOGIN_CODE_KEY: Tuple[str, ...] = tuple(settings.LOGIN_KEYWORDS)

    @staticmethod
    def generate_verification_code(length: Optional[int] = None) -> str:
        """
        生成验证码

        Args:
            length: 验证码长度，默认使用配置中的长度

        Returns:
            str: 验证码
        """
        if length is None:
            length = settings.LOGIN_CODE_LENGTH

        return _random_digits(length)

    @classmethod
    async def _find_user(cls, db: AsyncSession, openid: str) -> Optional[User]:
        stmt = select(User).where(User.wechat_openid == openid, User.is_deleted == False)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @classmethod
    async def create_or_get_user(cls, db: AsyncSession, openid: str) -> User:
        """
        根据OpenID查询或创建用户

        并发创建同一用户时，插入失败的一方回滚后读取已创建的记录

        Args:
            db: 数据库会话
            openid: 微信OpenID

        Returns:
            User: 用户对象
        """
        user = await cls._find_user(db, openid)
        if user:
            return user

        user = User(
            wechat_openid=openid,
            is_active=True,
            is_deleted=False
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            existing = await cls._find_user(db, openid)
            if existing is None:
                raise
            return existing
        await db.refresh(user)

        return user

    @classmethod
    async def get_verify_code(cls, db: AsyncSession, openid: str) -> str:
        """
        获取OpenID当前的登录验证码

        有效期内未使用的验证码直接复用；否则清理该用户的旧验证码并签发新的

        Args:
            db: 数据库会话
            openid: 微信OpenID

        Returns:
            str: 验证码
        """
        now = _utcnow()
        stmt = select(LoginCode).where(
            and_(
                LoginCode.openid == openid,
                LoginCode.used == False,
                LoginCode.expire_at > now
            )
        ).order_by(LoginCode.id.desc())
        result = await db.execute(stmt)
        current = result.scalars().first()
        if current:
            return current.verification_code

        await db.execute(
            delete(LoginCode).where(
                and_(
                    LoginCode.openid == openid,
                    LoginCode.used == False
                )
            )
        )

        verification_code = await cls._unique_code(db, now)
        db.add(LoginCode(
            openid=openid,
            verification_code=verification_code,
            expire_at=now + timedelta(seconds=settings.LOGIN_CODE_EXPIRE_SECONDS),
            used=False
        ))
        await db.commit()

        return verification_code

    @classmethod
    async def _unique_code(cls, db: AsyncSession, now: datetime) -> str:
        # 有效验证码之间不能重复，否则核销时无法确定用户
        while True:
            code = _random_digits(settings.LOGIN_CODE_LENGTH)
            stmt = select(LoginCode.id).where(
                and_(
                    LoginCode.verification_code == code,
                    LoginCode.used == False,
                    LoginCode.expire_at > now
                )
            )
            result = await db.execute(stmt)
            if result.first() is None:
                return code

    @classmethod
    async def login_by_verify_code(cls, db: AsyncSession, code: str) -> Optional[User]:
        """
        核销登录验证码

        Args:
            db: 数据库会话
            code: 验证码

        Returns:
            User: 验证成功返回用户对象，失败（含被并发请求抢先核销）返回None
        """
        stmt = select(LoginCode.id, LoginCode.openid).where(
            and_(
                LoginCode.verification_code == code,
                LoginCode.used == False,
                LoginCode.expire_at > _utcnow()
            )
        )
        result = await db.execute(stmt)
        row = result.first()

        if row is None:
            return None

        code_id, openid = row

        # 带 used == False 条件的更新，同一验证码只有一个请求能核销成功
        consumed = await db.execute(
            update(LoginCode)
            .where(and_(LoginCode.id == code_id, LoginCode.used == False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            await db.rollback()
            return None
        await db.commit()

        user = await cls.create_or_get_user(db, openid)

        # 关联用户ID到验证码记录，便于审计
        await db.execute(
            update(LoginCode)
            .where(LoginCode.id == code_id)
            .values(user_id=user.id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        return user


def get_login_service() -> type:
    """登录服务依赖"""
    return LoginService
