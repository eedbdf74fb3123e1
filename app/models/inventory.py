"""
库存与商家数据模型
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class MerchantStatus(str, Enum):
    """商家状态枚举"""
    PENDING = "pending"  # 待审核
    ACTIVE = "active"  # 营业中
    SUSPENDED = "suspended"  # 已封停


class Merchant(BaseModel):
    """商家模型（本模块只读）"""

    merchant_id: str
    name: str
    status: MerchantStatus
    minimum_order_amount: Decimal = Field(default=Decimal("0"), ge=0)

    @property
    def is_active(self) -> bool:
        """由 status 推导的只读布尔值"""
        return self.status == MerchantStatus.ACTIVE


class Product(BaseModel):
    """商品模型"""

    product_id: str
    merchant_id: str
    name: str
    category: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    stock_quantity: int = Field(..., ge=0)
    is_available: bool = True


class StockRequest(BaseModel):
    """库存检查/扣减的商品行"""

    product_id: str
    quantity: int = Field(..., ge=1)


class StockCheckItem(BaseModel):
    """单个商品的库存检查结果"""

    product_id: str
    product_name: Optional[str] = None
    requested_quantity: int
    available_stock: int
    is_sufficient: bool


class StockCheckReport(BaseModel):
    """批量库存检查报告"""

    items: List[StockCheckItem]

    @property
    def is_sufficient(self) -> bool:
        return all(item.is_sufficient for item in self.items)

    @property
    def insufficient_items(self) -> List[StockCheckItem]:
        return [item for item in self.items if not item.is_sufficient]
