"""
微信签名验证工具
"""
import hashlib
import hmac
from typing import List, Optional


def make_signature(token: str, timestamp: str, nonce: str) -> str:
    """token、timestamp、nonce 按字典序排序拼接后做 sha1"""
    tmp_arr: List[str] = [token, timestamp, nonce]
    tmp_arr.sort()
    return hashlib.sha1(''.join(tmp_arr).encode('utf-8')).hexdigest()


def verify_signature(
    token: str,
    timestamp: Optional[str],
    nonce: Optional[str],
    signature: Optional[str]
) -> bool:
    """
    验证微信服务器请求的签名

    Args:
        token: 服务器配置中的Token
        timestamp: 时间戳
        nonce: 随机字符串
        signature: 微信传来的签名

    Returns:
        bool: 验证是否通过，参数缺失时返回False
    """
    if not timestamp or not nonce or not signature:
        return False
    return hmac.compare_digest(make_signature(token, timestamp, nonce), signature)
