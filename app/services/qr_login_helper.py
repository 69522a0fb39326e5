"""
扫码登录会话管理

登录页打开时领取一个登录码并展示给用户，用户在公众号中回复该登录码（或扫描带参数的二维码）后，
公众号回调通过 login() 把该用户的验证码投递给仍在等待的登录页。
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class PendingLogin:
    """等待公众号确认的登录页会话"""
    code: str
    expire_at: float
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=1))

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expire_at


class QrLoginHelper:
    """维护登录码到等待中登录页的映射"""

    def __init__(self, code_length: int = None, expire_seconds: int = None) -> None:
        self.code_length = code_length or settings.QR_CODE_LENGTH
        self.expire_seconds = expire_seconds or settings.QR_CODE_EXPIRE_SECONDS
        self._pending: Dict[str, PendingLogin] = {}

    def init_code(self) -> str:
        """
        为新打开的登录页分配一个登录码

        Returns:
            str: 当前未被占用的数字登录码

        Raises:
            RuntimeError: 登录码已全部占用
        """
        self.cleanup_expired()
        if len(self._pending) >= 10 ** self.code_length:
            raise RuntimeError("登录码已用尽，请稍后重试")

        while True:
            code = ''.join(str(random.randint(0, 9)) for _ in range(self.code_length))
            if code not in self._pending:
                break

        self._pending[code] = PendingLogin(code=code, expire_at=time.time() + self.expire_seconds)
        logger.debug(f"登录码已分配: {code}")
        return code

    def login(self, code: str, verify_code: str) -> bool:
        """
        公众号侧确认登录，把验证码投递给等待中的登录页

        Args:
            code: 登录页展示的登录码
            verify_code: 该微信用户的登录验证码

        Returns:
            bool: 登录码存在且未过期、未被使用时返回True
        """
        pending = self._pending.get(code)
        if pending is None:
            return False
        if pending.expired():
            self._pending.pop(code, None)
            return False

        try:
            pending.queue.put_nowait(verify_code)
        except asyncio.QueueFull:
            # 同一登录码只能确认一次
            return False

        logger.info(f"登录码确认成功: {code}")
        return True

    async def wait_login(self, code: str, timeout: Optional[float] = None) -> Optional[str]:
        """
        等待公众号侧确认

        Args:
            code: 登录码
            timeout: 最长等待秒数，默认等到登录码过期

        Returns:
            str: 投递过来的验证码；登录码不存在或超时返回None
        """
        pending = self._pending.get(code)
        if pending is None:
            return None

        remaining = pending.expire_at - time.time()
        if timeout is None or timeout > remaining:
            timeout = remaining
        if timeout <= 0:
            return None

        try:
            return await asyncio.wait_for(pending.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def release(self, code: str) -> None:
        """登录页断开或登录完成后释放登录码"""
        self._pending.pop(code, None)

    def cleanup_expired(self) -> int:
        """清理过期登录码，返回清理数量"""
        now = time.time()
        expired = [code for code, pending in self._pending.items() if pending.expired(now)]
        for code in expired:
            del self._pending[code]
        return len(expired)

    def __contains__(self, code: str) -> bool:
        return code in self._pending


qr_login_helper = QrLoginHelper()


def get_qr_login_helper() -> QrLoginHelper:
    """扫码登录会话依赖"""
    return qr_login_helper
