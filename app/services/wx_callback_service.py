"""
公众号回调消息分发
"""
import logging
import re
import time
from typing import Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.core.mdc import mdc_dot
from app.schemas.wx import WxTxtMsgReq, WxTxtMsgRes
from app.services.qr_login_helper import QrLoginHelper

logger = logging.getLogger(__name__)

QR_SCENE_PREFIX = "qrscene_"
LOGIN_EVENTS = ("subscribe", "scan")

LOGIN_SUCCESS_MSG = "登录成功"
CODE_LOGIN_SUCCESS_MSG = "登录成功!"
CODE_EXPIRED_MSG = "验证码过期了，刷新登录页面重试一下吧"

_LOGIN_CODE_PATTERN = re.compile(r"[0-9]{4}")


def verify_code_msg(verify_code: str) -> str:
    return f"登录验证码: 【{verify_code}】 五分钟内有效"


def is_login_symbol(content: Optional[str], keywords: Iterable[str]) -> bool:
    """判断是否为登录指令（忽略大小写）"""
    if not content or not content.strip():
        return False

    content = content.strip().lower()
    return any(content == key.lower() for key in keywords)


def scene_login_code(event_key: Optional[str]) -> Optional[str]:
    """
    从二维码场景值中取出登录码

    关注事件的场景值带 qrscene_ 前缀，已关注用户扫码的场景值不带前缀

    Returns:
        str: 登录码；场景值为空时返回None
    """
    if not event_key or not event_key.strip():
        return None

    key = event_key.strip()
    if key.startswith(QR_SCENE_PREFIX):
        key = key[len(QR_SCENE_PREFIX):]
    return key or None


class WxCallbackService:
    """公众号消息处理：扫码/关注事件、登录指令、登录码"""

    def __init__(self, db: AsyncSession, login_service, qr_login_helper: QrLoginHelper) -> None:
        self.db = db
        self.login_service = login_service
        self.qr_login_helper = qr_login_helper

    @mdc_dot(biz_code=lambda args: args["msg"].FromUserName)
    async def dispatch(self, msg: WxTxtMsgReq) -> WxTxtMsgRes:
        """
        处理一条公众号推送，返回被动回复

        所有分支都以回复文案结束，不会因为验证码过期或无法识别的输入抛出异常
        """
        res = WxTxtMsgRes(
            ToUserName=msg.FromUserName,
            FromUserName=msg.ToUserName,
            CreateTime=int(time.time()),
            MsgType="text",
        )

        if msg.Event.lower() in LOGIN_EVENTS:
            res.Content = await self._on_scene_event(msg)
        else:
            res.Content = await self._on_text(msg)
        return res

    async def _on_scene_event(self, msg: WxTxtMsgReq) -> str:
        code = scene_login_code(msg.EventKey)
        if code is None:
            return settings.WX_WELCOME_MSG

        # 带参数的二维码，扫码/关注后直接登录，省去输入登录码这一步
        verify_code = await self.login_service.get_verify_code(self.db, msg.FromUserName)
        if self.qr_login_helper.login(code, verify_code):
            return LOGIN_SUCCESS_MSG
        logger.info(f"扫码登录失败，登录码无效: {code}")
        return CODE_EXPIRED_MSG

    async def _on_text(self, msg: WxTxtMsgReq) -> str:
        content = (msg.Content or "").strip()

        if is_login_symbol(content, self.login_service.LOGIN_CODE_KEY):
            verify_code = await self.login_service.get_verify_code(self.db, msg.FromUserName)
            return verify_code_msg(verify_code)

        if _LOGIN_CODE_PATTERN.fullmatch(content):
            verify_code = await self.login_service.get_verify_code(self.db, msg.FromUserName)
            if self.qr_login_helper.login(content, verify_code):
                return CODE_LOGIN_SUCCESS_MSG
            return CODE_EXPIRED_MSG

        return settings.WX_FALLBACK_MSG
