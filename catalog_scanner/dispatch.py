"""
扫描分发决策

把分类结果映射为下一步动作。这里只做决策，不调用后端。
"""

from dataclasses import dataclass
from enum import Enum

from .identifiers import IdentifierClassification, IdentifierKind


class ScanAction(str, Enum):
    CHECK_THEN_FETCH = "check_then_fetch"   # 先查是否已收录，未收录则抓取入库
    LOOKUP_BY_CODE = "lookup_by_code"       # 按条码查找已有条目
    REPORT_UNKNOWN = "report_unknown"       # 提示未知条码格式
    IGNORE = "ignore"


@dataclass(frozen=True)
class DispatchDecision:
    action: ScanAction
    identifier: str
    classification: IdentifierClassification
    serial: bool = False


_ACTIONS = {
    IdentifierKind.ISBN10: ScanAction.CHECK_THEN_FETCH,
    IdentifierKind.ISBN13: ScanAction.CHECK_THEN_FETCH,
    IdentifierKind.ISSN: ScanAction.CHECK_THEN_FETCH,
    IdentifierKind.EAN13: ScanAction.LOOKUP_BY_CODE,
    IdentifierKind.NUMERIC_UNRECOGNIZED: ScanAction.REPORT_UNKNOWN,
    IdentifierKind.NOT_A_BARCODE: ScanAction.IGNORE,
}


def decide(classification: IdentifierClassification) -> DispatchDecision:
    """根据分类结果决定动作"""
    return DispatchDecision(
        action=_ACTIONS[classification.kind],
        identifier=classification.digits,
        classification=classification,
        serial=classification.kind == IdentifierKind.ISSN,
    )


def decompose_serial_code(code: str):
    """把期刊组合码拆分为系列码与期号

    预留的扩展点，目前没有可用的拆分规则。
    """
    raise NotImplementedError("期刊组合码拆分尚未实现")


__all__ = ["ScanAction", "DispatchDecision", "decide", "decompose_serial_code"]
