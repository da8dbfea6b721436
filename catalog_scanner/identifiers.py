"""
条码标识符识别与分类

把扫码枪或剪贴板得到的文本判定为 ISBN-10、ISBN-13、ISSN、EAN-13、
无法识别的纯数字，或者根本不是条码。所有函数都是纯函数，不抛异常。

13 位且校验通过的数字在 ISBN-13 与 EAN-13 之间无法区分，
由调用方通过 ``thirteen_digit_as`` 选择解释方式。
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IdentifierKind(str, Enum):
    """标识符类型"""
    ISBN10 = "ISBN_10"
    ISBN13 = "ISBN_13"
    ISSN = "ISSN"
    EAN13 = "EAN_13"
    NUMERIC_UNRECOGNIZED = "NUMERIC_UNRECOGNIZED"
    NOT_A_BARCODE = "NOT_A_BARCODE"


class ThirteenDigitAs(str, Enum):
    """13 位有效数字的解释方式"""
    ISBN = "isbn"
    EAN = "ean"


class IssnPolicy(str, Enum):
    """ISSN 候选长度规则

    PERMISSIVE: 8 位，或长于 8 位但不是 10/13 位
    STRICT: 恰好 8 位
    """
    PERMISSIVE = "permissive"
    STRICT = "strict"


@dataclass(frozen=True)
class IdentifierClassification:
    kind: IdentifierKind
    digits: str = ""
    # None 表示该类型没有可用的校验位
    checksum_valid: Optional[bool] = None

    @property
    def is_book(self) -> bool:
        return self.kind in (IdentifierKind.ISBN10, IdentifierKind.ISBN13)

    @property
    def is_barcode(self) -> bool:
        return self.kind not in (
            IdentifierKind.NUMERIC_UNRECOGNIZED,
            IdentifierKind.NOT_A_BARCODE,
        )


_ISBN10_PATTERN = re.compile(r"^[0-9]{9}[0-9X]$", re.IGNORECASE)
_ALL_DIGITS = re.compile(r"^[0-9]+$")
_SEPARATORS = re.compile(r"[\s-]+")
_NON_DIGITS = re.compile(r"[^0-9]")


def isbn10_checksum_valid(value: str) -> bool:
    """ISBN-10 校验：权重 10..1，加权和模 11 为 0，X 代表 10"""
    if not _ISBN10_PATTERN.match(value):
        return False
    total = 0
    for index, char in enumerate(value):
        digit = 10 if char in "xX" else int(char)
        total += digit * (10 - index)
    return total % 11 == 0


def ean13_check_digit(first12: str) -> int:
    """根据前 12 位计算 EAN-13/ISBN-13 校验位"""
    total = sum(int(first12[i]) * (1 if i % 2 == 0 else 3) for i in range(12))
    return (10 - total % 10) % 10


def ean13_checksum_valid(digits: str) -> bool:
    """EAN-13 与 ISBN-13 使用相同的 1/3 交替权重"""
    if len(digits) != 13 or not _ALL_DIGITS.match(digits):
        return False
    return int(digits[12]) == ean13_check_digit(digits[:12])


isbn13_checksum_valid = ean13_checksum_valid


def issn_checksum_valid(digits: str) -> bool:
    """ISSN 校验：前 7 位权重 8..2，校验位 = (11 - 和 % 11) % 11"""
    if len(digits) != 8 or not _ALL_DIGITS.match(digits):
        return False
    total = sum(int(digits[i]) * (8 - i) for i in range(7))
    check = (11 - total % 11) % 11
    # 校验值 10 需要字符 X，纯数字形式无法表示
    return check != 10 and int(digits[7]) == check


def isbn10_to_isbn13(value: str) -> Optional[str]:
    """将有效的 ISBN-10 转换为 978 前缀的 ISBN-13，无效时返回 None"""
    compact = _SEPARATORS.sub("", value).upper()
    if not isbn10_checksum_valid(compact):
        return None
    base = "978" + compact[:9]
    return base + str(ean13_check_digit(base))


def classify(
    text: str,
    thirteen_digit_as: ThirteenDigitAs = ThirteenDigitAs.ISBN,
    issn_policy: IssnPolicy = IssnPolicy.PERMISSIVE,
) -> IdentifierClassification:
    """对已去除首尾空白的文本进行分类，任何输入都有结果"""
    if not text:
        return IdentifierClassification(IdentifierKind.NOT_A_BARCODE)

    compact = _SEPARATORS.sub("", text)
    digits = _NON_DIGITS.sub("", text)

    if _ISBN10_PATTERN.match(compact):
        normalized = compact.upper()
        if isbn10_checksum_valid(normalized):
            return IdentifierClassification(IdentifierKind.ISBN10, normalized, True)
        # 校验失败的 ISBN-10 保留末尾 X，10 位不参与 ISSN 判定
        return IdentifierClassification(IdentifierKind.NUMERIC_UNRECOGNIZED, normalized, False)

    if len(digits) == 13 and ean13_checksum_valid(digits):
        kind = IdentifierKind.EAN13 if thirteen_digit_as == ThirteenDigitAs.EAN else IdentifierKind.ISBN13
        return IdentifierClassification(kind, digits, True)

    if len(digits) == 8:
        return IdentifierClassification(IdentifierKind.ISSN, digits, issn_checksum_valid(digits))
    if issn_policy == IssnPolicy.PERMISSIVE and len(digits) > 8 and len(digits) not in (10, 13):
        return IdentifierClassification(IdentifierKind.ISSN, digits)

    if _ALL_DIGITS.match(compact):
        failed_checksum = False if len(digits) in (10, 13) else None
        return IdentifierClassification(IdentifierKind.NUMERIC_UNRECOGNIZED, digits, failed_checksum)

    return IdentifierClassification(IdentifierKind.NOT_A_BARCODE, digits)


__all__ = [
    "IdentifierKind",
    "ThirteenDigitAs",
    "IssnPolicy",
    "IdentifierClassification",
    "classify",
    "isbn10_checksum_valid",
    "isbn13_checksum_valid",
    "ean13_checksum_valid",
    "ean13_check_digit",
    "issn_checksum_valid",
    "isbn10_to_isbn13",
]
