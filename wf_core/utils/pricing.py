"""
定价与分析计算
成本、售价、加价率之间双向换算，以及周转率、过期紧急度等派生指标
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

MONEY = Decimal("0.01")
HUNDRED = Decimal("100")
MONEY_ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """统一转换为 Decimal，float 先转字符串避免二进制误差"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Any) -> Decimal:
    """金额保留两位小数（四舍五入）"""
    return to_decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


def round_pct(value: Optional[Any]) -> Optional[float]:
    """百分比保留两位小数，返回 float 便于 JSON 输出"""
    if value is None:
        return None
    return float(round_money(value))


def landed_cost(unit_cost: Any, shipping_cost_per_unit: Any = None) -> Decimal:
    """到岸成本 = 单位成本 + 单位运费"""
    return to_decimal(unit_cost) + to_decimal(shipping_cost_per_unit)


def markup_from_price(unit_cost: Any, selling_price: Any) -> Optional[Decimal]:
    """按成本计算的加价率（%），成本为 0 时无意义"""
    cost = to_decimal(unit_cost)
    if cost <= 0:
        return None
    return (to_decimal(selling_price) - cost) / cost * HUNDRED


def price_from_markup(unit_cost: Any, markup_pct: Any) -> Decimal:
    """由加价率反推售价"""
    return round_money(to_decimal(unit_cost) * (1 + to_decimal(markup_pct) / HUNDRED))


def gross_margin_from_price(unit_cost: Any, selling_price: Any) -> Optional[Decimal]:
    """按售价计算的毛利率（%）"""
    price = to_decimal(selling_price)
    if price <= 0:
        return None
    return (price - to_decimal(unit_cost)) / price * HUNDRED


def min_margin_price(unit_cost: Any, min_margin_pct: Any) -> Decimal:
    """满足最低加价率的最低售价"""
    return price_from_markup(unit_cost, min_margin_pct)


def profit_margin(unit_cost: Any, shipping_cost_per_unit: Any, selling_price: Any) -> Optional[Decimal]:
    """利润率 = (售价 - 到岸成本) / 到岸成本 × 100"""
    return markup_from_price(landed_cost(unit_cost, shipping_cost_per_unit), selling_price)


def turnover_rate(sold_quantity: int, current_stock: int) -> Decimal:
    """周转率 = 售出 / (当前库存 + 售出) × 100"""
    denominator = current_stock + sold_quantity
    if denominator <= 0:
        return Decimal("0")
    return Decimal(sold_quantity) / Decimal(denominator) * HUNDRED


def expiry_urgency(days_to_expiry: int, critical_days: int = 7, warning_days: int = 14) -> str:
    """过期紧急度分级"""
    if days_to_expiry <= critical_days:
        return "critical"
    if days_to_expiry <= warning_days:
        return "warning"
    return "info"
