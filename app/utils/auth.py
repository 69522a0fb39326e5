"""
认证工具函数
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import HTTPException, status
from app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    创建JWT访问token

    Args:
        data: 要编码到token中的数据
        expires_delta: token过期时间增量，默认使用配置中的时间

    Returns:
        str: JWT token字符串
    """
    to_encode = data.copy()

    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str, raise_on_error: bool = True) -> Optional[Dict[str, Any]]:
    """
    验证JWT token

    Args:
        token: JWT token字符串
        raise_on_error: 验证失败时是否抛出异常，False时返回None

    Returns:
        Dict: token中的payload数据

    Raises:
        HTTPException: token无效或过期（如果raise_on_error=True）
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        if raise_on_error:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token无效或已过期",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return None
