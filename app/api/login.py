"""
登录API：登录页订阅扫码结果、验证码登录
"""
import logging
from typing import AsyncGenerator
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.database import get_db
from app.services.login_service import get_login_service
from app.services.qr_login_helper import QrLoginHelper, get_qr_login_helper
from app.schemas.login import VerifyCodeRequest, VerifyCodeResponse
from app.schemas.common import ResponseModel
from app.utils.auth import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/login", tags=["登录"])


@router.get("/subscribe")
async def subscribe(qr_login_helper: QrLoginHelper = Depends(get_qr_login_helper)):
    """
    登录页订阅公众号登录结果

    返回Server-Sent Events (SSE)格式的数据:
        data: init#{登录码}      登录页展示该登录码，引导用户在公众号回复
        data: login#{验证码}     用户已在公众号确认，登录页拿验证码调用 /login/verify
        data: refresh#          登录码过期，登录页需要刷新
    """
    code = qr_login_helper.init_code()

    async def generate() -> AsyncGenerator[str, None]:
        try:
            yield f"data: init#{code}\n\n"
            verify_code = await qr_login_helper.wait_login(code)
            if verify_code is None:
                yield "data: refresh#\n\n"
            else:
                yield f"data: login#{verify_code}\n\n"
        finally:
            qr_login_helper.release(code)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream"
    )


@router.post("/verify", response_model=ResponseModel)
async def verify_code(
    request: VerifyCodeRequest,
    db: AsyncSession = Depends(get_db),
    login_service=Depends(get_login_service)
):
    """
    验证码登录

    请求体:
    {
        "code": "123456"
    }

    返回:
    {
        "code": 200,
        "data": {
            "token": "jwt_token",
            "user": {...}
        }
    }
    """
    user = await login_service.login_by_verify_code(db, request.code)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="验证码无效或已过期"
        )

    token_data = {"sub": str(user.id), "openid": user.wechat_openid}
    access_token = create_access_token(data=token_data)

    user_data = {
        "id": user.id,
        "username": user.username,
        "avatar_url": user.avatar_url,
        "wechat_openid": user.wechat_openid,
        "created_at": user.created_at.isoformat() if user.created_at else None
    }

    return ResponseModel(
        code=200,
        message="登录成功",
        data=VerifyCodeResponse(token=access_token, user=user_data)
    )
