"""
用户模型
"""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, TIMESTAMP, func
from app.db.database import Base

# SQLite 只对 INTEGER 主键自增
PK_TYPE = BigInteger().with_variant(Integer, "sqlite")


class User(Base):
    __tablename__ = "user"

    id = Column(PK_TYPE, primary_key=True, autoincrement=True)
    username = Column(String(64), unique=True, nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    wechat_openid = Column(String(64), unique=True, nullable=True)  # 微信OpenID
