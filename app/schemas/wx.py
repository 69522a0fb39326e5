"""
微信公众号消息Schema（XML收发）
"""
import xml.etree.ElementTree as ET
from pydantic import BaseModel, ConfigDict


class WxMessageError(ValueError):
    """微信推送的消息体无法解析"""


def _cdata(value: str) -> str:
    # CDATA 内不能出现 "]]>"，拆成两段
    return "<![CDATA[" + value.replace("]]>", "]]]]><![CDATA[>") + "]]>"


class WxTxtMsgReq(BaseModel):
    """微信推送的文本消息/事件"""
    model_config = ConfigDict(frozen=True)

    ToUserName: str = ""
    FromUserName: str = ""
    CreateTime: int = 0
    MsgType: str = ""
    Content: str = ""
    Event: str = ""
    EventKey: str = ""
    MsgId: str = ""

    @classmethod
    def from_xml(cls, body: bytes) -> "WxTxtMsgReq":
        """
        解析微信推送的XML

        Args:
            body: 请求体

        Returns:
            WxTxtMsgReq: 缺失的字段取默认值

        Raises:
            WxMessageError: XML格式错误
        """
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise WxMessageError(f"XML解析失败: {e}") from e

        values = {}
        for name in cls.model_fields:
            node = root.find(name)
            if node is not None and node.text is not None:
                values[name] = node.text

        create_time = values.get("CreateTime")
        if create_time is not None:
            try:
                values["CreateTime"] = int(create_time)
            except ValueError:
                raise WxMessageError(f"CreateTime非法: {create_time}")

        return cls(**values)


class WxTxtMsgRes(BaseModel):
    """被动回复的文本消息"""
    ToUserName: str
    FromUserName: str
    CreateTime: int
    MsgType: str = "text"
    Content: str = ""

    def to_xml(self) -> str:
        return f"""<xml>
<ToUserName>{_cdata(self.ToUserName)}</ToUserName>
<FromUserName>{_cdata(self.FromUserName)}</FromUserName>
<CreateTime>{self.CreateTime}</CreateTime>
<MsgType>{_cdata(self.MsgType)}</MsgType>
<Content>{_cdata(self.Content)}</Content>
</xml>"""
