"""
SchemForge 异常层级

传输层错误 (OSError) 原样向上抛出，不在这里包装。
格式探测失败不是错误 —— 探测函数返回 None。
"""

from __future__ import annotations


class SchematicError(Exception):
    """所有 SchemForge 错误的基类"""


class FormatError(SchematicError, ValueError):
    """数据流内容与格式不符 (签名错误、字段缺失、尺寸越界)"""


class UnsupportedOperationError(SchematicError):
    """格式不支持该操作，例如读取只写格式"""


class NotFoundError(SchematicError):
    """解析/发现流程没有产生任何候选项"""


class UnauthorizedError(SchematicError):
    """主机白名单或路径权限校验失败"""


class DuplicateAliasError(SchematicError):
    """注册格式时别名已被其他格式占用"""

    def __init__(self, alias: str, existing: str, incoming: str) -> None:
        super().__init__(
            f"Alias {alias!r} already registered to {existing}, cannot assign to {incoming}"
        )
        self.alias = alias
        self.existing = existing
        self.incoming = incoming
