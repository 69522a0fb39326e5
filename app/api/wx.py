"""
微信公众号回调API
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.database import get_db
from app.core.config import settings
from app.utils.wechat_signature import verify_signature
from app.schemas.wx import WxTxtMsgReq, WxMessageError
from app.services.login_service import get_login_service
from app.services.qr_login_helper import QrLoginHelper, get_qr_login_helper
from app.services.wx_callback_service import WxCallbackService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wx", tags=["微信公众号"])

XML_CONTENT_TYPES = ("application/xml", "text/xml")
XML_RESPONSE_TYPE = "application/xml;charset=utf-8"


def check_signature(
    signature: Optional[str] = Query(None),
    timestamp: Optional[str] = Query(None),
    nonce: Optional[str] = Query(None)
) -> None:
    """开启签名校验时，校验微信服务器请求的签名"""
    if not settings.WECHAT_VERIFY_SIGNATURE:
        return

    if not settings.WECHAT_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="微信Token未配置"
        )

    if not verify_signature(settings.WECHAT_TOKEN, timestamp, nonce, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="签名验证失败"
        )


def get_wx_callback_service(
    db: AsyncSession = Depends(get_db),
    login_service=Depends(get_login_service),
    qr_login_helper: QrLoginHelper = Depends(get_qr_login_helper)
) -> WxCallbackService:
    return WxCallbackService(db, login_service, qr_login_helper)


@router.get("/callback", dependencies=[Depends(check_signature)])
async def check(echostr: Optional[str] = Query(None)):
    """
    公众号接入验证（GET请求），原样返回echostr
    """
    if echostr and echostr.strip():
        return PlainTextResponse(content=echostr)
    return PlainTextResponse(content="")


@router.post("/callback", dependencies=[Depends(check_signature)])
async def callback(
    request: Request,
    service: WxCallbackService = Depends(get_wx_callback_service)
):
    """
    接收公众号消息和事件推送（POST请求），被动回复文本消息

    本地测试:
        curl -X POST 'http://localhost:8000/wx/callback' -H 'content-type:application/xml' \
            -d '<xml><ToUserName><![CDATA[forum]]></ToUserName><FromUserName><![CDATA[demoUser1234]]></FromUserName><CreateTime>1655700579</CreateTime><MsgType><![CDATA[text]]></MsgType><Content><![CDATA[login]]></Content><MsgId>11111111</MsgId></xml>'
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type not in XML_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="仅支持XML消息"
        )

    body = await request.body()
    try:
        msg = WxTxtMsgReq.from_xml(body)
    except WxMessageError as e:
        logger.warning(f"公众号消息解析失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="消息格式错误"
        )

    res = await service.dispatch(msg)
    return Response(content=res.to_xml(), media_type=XML_RESPONSE_TYPE)
