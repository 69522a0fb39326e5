"""
业务埋点装饰器

被 @mdc_dot 修饰的函数（或类中的全部公开方法）在执行期间，会把业务编码 bizCode
写入诊断上下文，使这段时间内输出的日志都带上该编码；执行结束后（无论正常返回还是抛出异常）
恢复调用前的上下文，并记录一次执行耗时。

用法:
    @mdc_dot(biz_code="wx-callback")
    def handle(...): ...

    @mdc_dot(biz_code=lambda args: args["openid"])
    async def get_verify_code(db, openid): ...

    @mdc_dot(biz_code=lambda args: args["msg"].FromUserName)
    class WxCallbackService: ...
"""
import functools
import inspect
import logging
import time
from typing import Any, Callable, Dict, Union

from app.core.logger import BIZ_CODE_KEY, mdc_add, mdc_reset

logger = logging.getLogger(__name__)

BizCode = Union[str, Callable[[Dict[str, Any]], Any], None]

# 已被方法级 @mdc_dot 修饰的标记，类级修饰时跳过这些方法
_MARKER = "__mdc_dot__"


def mdc_dot(biz_code: BizCode = None):
    """
    业务埋点装饰器，可作用于函数、方法或类

    Args:
        biz_code: 业务编码。字符串按字面值使用；可调用对象接收按参数名绑定的实参字典，返回编码

    Returns:
        装饰器

    Raises:
        TypeError: 写在 @classmethod/@staticmethod 之上，或修饰生成器函数。类级修饰时生成器方法会被跳过
    """
    def decorator(target):
        if inspect.isclass(target):
            return _decorate_class(target, biz_code)
        if isinstance(target, (classmethod, staticmethod)):
            raise TypeError("@mdc_dot 需写在 @classmethod/@staticmethod 之下")
        if _is_generator(target):
            raise TypeError(f"@mdc_dot 不支持生成器函数: {target.__qualname__}")
        return _wrap(target, biz_code, _owner_name(target))

    return decorator


def _is_generator(func: Callable) -> bool:
    # 生成器在迭代前就已返回，无法覆盖其执行期间
    return inspect.isgeneratorfunction(func) or inspect.isasyncgenfunction(func)


def _owner_name(func: Callable) -> str:
    """方法取所属类名，模块级函数取模块名最后一段"""
    parts = [p for p in func.__qualname__.split(".") if p != "<locals>"]
    if len(parts) > 1:
        return parts[-2]
    return func.__module__.rsplit(".", 1)[-1]


def _decorate_class(cls: type, biz_code: BizCode) -> type:
    for name, attr in list(vars(cls).items()):
        if name.startswith("_"):
            continue

        if isinstance(attr, staticmethod):
            func = attr.__func__
            if not getattr(func, _MARKER, False) and not _is_generator(func):
                setattr(cls, name, staticmethod(_wrap(func, biz_code, cls.__name__)))
        elif isinstance(attr, classmethod):
            func = attr.__func__
            if not getattr(func, _MARKER, False) and not _is_generator(func):
                setattr(cls, name, classmethod(_wrap(func, biz_code, cls.__name__)))
        elif inspect.isfunction(attr) and not getattr(attr, _MARKER, False) and not _is_generator(attr):
            setattr(cls, name, _wrap(attr, biz_code, cls.__name__))
    return cls


def _load_biz_code(biz_code: BizCode, sig: inspect.Signature, args: tuple, kwargs: dict) -> str:
    if biz_code is None:
        return ""
    if callable(biz_code):
        bound = sig.bind(*args, **kwargs)
        bound.apply_defaults()
        value = biz_code(dict(bound.arguments))
        return "" if value is None else str(value)
    if not biz_code.strip():
        return ""
    return biz_code


def _log_cost(owner: str, name: str, start: float) -> None:
    cost = int((time.time() - start) * 1000)
    logger.info(f"执行耗时: {owner}#{name} = {cost}ms", extra={"duration_ms": cost})


def _wrap(func: Callable, biz_code: BizCode, owner: str) -> Callable:
    sig = inspect.signature(func)
    name = func.__name__

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.time()
            token = mdc_add(BIZ_CODE_KEY, _load_biz_code(biz_code, sig, args, kwargs))
            try:
                return await func(*args, **kwargs)
            finally:
                _log_cost(owner, name, start)
                mdc_reset(token)

        setattr(async_wrapper, _MARKER, True)
        return async_wrapper

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        start = time.time()
        token = mdc_add(BIZ_CODE_KEY, _load_biz_code(biz_code, sig, args, kwargs))
        try:
            return func(*args, **kwargs)
        finally:
            _log_cost(owner, name, start)
            mdc_reset(token)

    setattr(sync_wrapper, _MARKER, True)
    return sync_wrapper
