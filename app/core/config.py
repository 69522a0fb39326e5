"""
应用配置文件
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """应用配置"""

    # 应用基本配置
    APP_NAME: str = "Forum WeChat Login"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # 数据库配置
    DB_USERNAME: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "forum"
    DB_URL: Optional[str] = None  # 完整连接串，配置后忽略上面的分项

    # JWT配置
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS配置
    CORS_ORIGINS: list = ["*"]

    # 微信公众号配置
    WECHAT_TOKEN: Optional[str] = None  # 服务器配置中的Token
    WECHAT_VERIFY_SIGNATURE: bool = False  # 是否校验微信回调签名

    # 登录验证码配置
    LOGIN_CODE_EXPIRE_SECONDS: int = 300  # 验证码有效期（5分钟）
    LOGIN_CODE_LENGTH: int = 6  # 验证码长度
    LOGIN_KEYWORDS: List[str] = ["login", "登录", "验证码"]  # 触发下发验证码的关键词

    # 扫码登录配置
    QR_CODE_LENGTH: int = 4  # 登录页展示的登录码长度
    QR_CODE_EXPIRE_SECONDS: int = 300

    # 公众号回复文案
    WX_WELCOME_MSG: str = "欢迎关注公众号! 回复【登录】获取登录验证码，或直接回复登录页面上的四位数字完成登录"
    WX_FALLBACK_MSG: str = "回复【登录】获取登录验证码，或直接回复登录页面上的四位数字完成登录"

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # text | json

    @property
    def DATABASE_URL(self) -> str:
        """获取数据库连接URL"""
        if self.DB_URL:
            return self.DB_URL
        return f"postgresql+asyncpg://{self.DB_USERNAME}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
