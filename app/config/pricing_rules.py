"""
金额与红包的静态规则配置
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

# 金额统一保留两位小数，四舍五入
MONEY_QUANT = Decimal("0.01")
MONEY_ROUNDING = ROUND_HALF_UP

# 拼手气红包：平均金额上下浮动1元，最低0.01元
RED_PACKET_SPREAD = Decimal("1")
RED_PACKET_MIN_AMOUNT = Decimal("0.01")

# 代金券编码：V + 7位数字
VOUCHER_CODE_PREFIX = "V"
VOUCHER_CODE_DIGITS = 7

# 核销码：6位大写字母数字
VERIFICATION_CODE_LENGTH = 6
VERIFICATION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# 订单编号：ORDER + 时间戳后6位 + 4位随机字符
ORDER_NUMBER_PREFIX = "ORDER"
ORDER_NUMBER_RANDOM_LENGTH = 4


def round_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """按货币最小单位取整"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_QUANT, rounding=MONEY_ROUNDING)
