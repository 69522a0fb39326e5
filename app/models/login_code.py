"""
登录验证码模型
"""
from sqlalchemy import Column, String, Boolean, TIMESTAMP, ForeignKey, func
from app.db.database import Base
from app.models.user import PK_TYPE


class LoginCode(Base):
    __tablename__ = "login_code"

    id = Column(PK_TYPE, primary_key=True, autoincrement=True)
    openid = Column(String(64), nullable=False, index=True)
    verification_code = Column(String(16), nullable=False)
    expire_at = Column(TIMESTAMP(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    user_id = Column(PK_TYPE, ForeignKey('user.id'), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
