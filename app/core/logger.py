"""
日志配置与诊断上下文（MDC）

诊断上下文保存在 ContextVar 中，每个请求/协程各自独立。
写入时总是替换为新的字典快照，因此通过 Token 重置即可精确恢复到写入前的状态。
"""
import json
import logging
import uuid
from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

BIZ_CODE_KEY = "bizCode"
TRACE_ID_KEY = "traceId"

mdc_var: ContextVar[Dict[str, str]] = ContextVar("mdc", default={})

# LogRecord 自带的属性，不作为 extra 输出
_RECORD_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message", "asctime",
))


def mdc_snapshot() -> Dict[str, str]:
    """当前诊断上下文的副本"""
    return dict(mdc_var.get())


def mdc_get(key: str) -> Optional[str]:
    return mdc_var.get().get(key)


def mdc_add(key: str, value: str) -> Token:
    """
    向诊断上下文写入一个键值

    Returns:
        Token: 用于 mdc_reset 恢复写入前的上下文
    """
    ctx = dict(mdc_var.get())
    ctx[key] = value
    return mdc_var.set(ctx)


def mdc_reset(token: Token) -> None:
    mdc_var.reset(token)


def generate_trace_id() -> str:
    """生成链路 ID"""
    return uuid.uuid4().hex[:16]


class MdcTextFormatter(logging.Formatter):
    """文本格式，附带诊断上下文"""

    def format(self, record: logging.LogRecord) -> str:
        base = f"[{self.formatTime(record)}] {record.levelname:5} {record.name}: {record.getMessage()}"

        ctx = mdc_var.get()
        if ctx:
            base += " (" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + ")"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class MdcJsonFormatter(logging.Formatter):
    """JSON 结构化格式，附带诊断上下文与 extra 字段"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(mdc_var.get())

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """
    初始化全局日志配置

    Args:
        level: 日志级别，如 'DEBUG'、'INFO'
        fmt: 输出格式，text 或 json
    """
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(MdcJsonFormatter())
    else:
        handler.setFormatter(MdcTextFormatter())

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )

    # 降低第三方库日志级别
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
