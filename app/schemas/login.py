"""
登录相关Schema
"""
from pydantic import BaseModel, Field


class VerifyCodeRequest(BaseModel):
    """验证码登录请求"""
    code: str = Field(..., min_length=1, description="公众号下发的登录验证码")


class VerifyCodeResponse(BaseModel):
    """验证码登录响应"""
    token: str
    user: dict
