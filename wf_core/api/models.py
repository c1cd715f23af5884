"""
API 请求与响应模型
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

from wf_core.utils.wizard import StepWizard

T = TypeVar('T')

ShipmentStatus = Literal["pending", "in-transit", "delivered", "cancelled", "delayed", "damaged"]
ShipmentPriority = Literal["low", "medium", "high", "urgent"]
ItemCondition = Literal["excellent", "good", "damaged"]


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    ok: bool = Field(description="操作是否成功")
    data: Optional[T] = Field(default=None, description="响应数据")
    error: Optional[Dict[str, Any]] = Field(default=None, description="错误信息（RFC7807 Problem Details）")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="元数据")

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ApiResponse[T]":
        """创建成功响应"""
        return cls(ok=True, data=data, metadata=metadata)


# ---------- 库存台账 ----------

class ReceiveItem(BaseModel):
    """入库明细"""
    product_id: int
    quantity: int = Field(gt=0)
    unit_cost: Decimal = Field(ge=0)
    original_unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    shipping_cost_per_unit: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(ge=0)
    expiry_date: Optional[datetime] = None
    quality_grade: Literal["A", "B", "C"] = "A"
    batch_number: Optional[str] = Field(default=None, max_length=50)
    received_at: Optional[datetime] = None
    notes: Optional[str] = None


class ReceiveStockRequest(BaseModel):
    warehouse_id: int
    items: List[ReceiveItem] = Field(min_length=1)


class AdjustStockRequest(BaseModel):
    """库存调整：delta 为正入库，为负按 FIFO 扣减"""
    warehouse_id: int
    product_id: int
    delta: int
    reason: str = Field(min_length=1, max_length=500)


class TransferStockRequest(BaseModel):
    from_warehouse_id: int
    to_warehouse_id: int
    product_id: int
    quantity: int = Field(gt=0)


class BatchPriceUpdate(BaseModel):
    batch_id: int
    new_selling_price: Decimal = Field(ge=0)
    expiry_date: Optional[datetime] = None


class UpdateBatchPricesRequest(BaseModel):
    updates: List[BatchPriceUpdate] = Field(min_length=1)


# ---------- 发运（向导各步骤） ----------

class ShipmentItemInput(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    condition: ItemCondition = "good"
    batch_number: Optional[str] = None
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = None


class ShipmentRouteStep(BaseModel):
    """步骤 0：线路"""
    origin_warehouse_id: int
    destination_warehouse_id: int
    transport_id: int

    @model_validator(mode="after")
    def check_route(self):
        if self.origin_warehouse_id == self.destination_warehouse_id:
            raise ValueError("Origin and destination warehouses must be different")
        return self


class ShipmentItemsStep(BaseModel):
    """步骤 1：货物"""
    items: List[ShipmentItemInput] = Field(min_length=1)


class ShipmentScheduleStep(BaseModel):
    """步骤 2：时间"""
    scheduled_pickup_date: datetime
    estimated_delivery_date: datetime
    priority: ShipmentPriority = "medium"

    @model_validator(mode="after")
    def check_dates(self):
        if self.estimated_delivery_date < self.scheduled_pickup_date:
            raise ValueError("Estimated delivery date must not be before scheduled pickup date")
        return self


class ShipmentHandlingStep(BaseModel):
    """步骤 3：温控与保险"""
    temperature_required: bool = False
    min_temperature: Optional[Decimal] = None
    max_temperature: Optional[Decimal] = None
    insured: bool = False
    insurance_value: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_handling(self):
        if self.temperature_required:
            if self.min_temperature is None or self.max_temperature is None:
                raise ValueError("Temperature range is required for temperature-controlled shipments")
            if self.min_temperature > self.max_temperature:
                raise ValueError("Minimum temperature must not exceed maximum temperature")
        if self.insured and not self.insurance_value:
            raise ValueError("Insurance value is required for insured shipments")
        return self


class CreateShipmentRequest(ShipmentRouteStep, ShipmentItemsStep, ShipmentScheduleStep, ShipmentHandlingStep):
    """创建发运单（四个步骤字段的合集）"""


class ShipmentWizardRequest(BaseModel):
    """按步骤序号提交的全部向导数据"""
    steps: Dict[int, Dict[str, Any]]


class UpdateShipmentStatusRequest(BaseModel):
    status: ShipmentStatus
    notes: Optional[str] = None


class UpdateLocationRequest(BaseModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = None
    notes: Optional[str] = None
    temperature: Optional[Decimal] = None


class QualityCheckRequest(BaseModel):
    results: str = Field(min_length=1)
    issues: List[str] = Field(default_factory=list)
    approved: bool


# ---------- 销售 ----------

class SaleItemInput(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class RecordSaleRequest(BaseModel):
    warehouse_id: int
    items: List[SaleItemInput] = Field(min_length=1)
    payment_method: Literal["cash", "card", "mobile"] = "cash"
    sale_date: Optional[datetime] = None


# ---------- 调拨申请 ----------

class TransferItemInput(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)


class CreateTransferRequest(BaseModel):
    from_warehouse_id: int
    to_warehouse_id: int
    items: List[TransferItemInput] = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=500)
    notes: Optional[str] = None


class ApproveTransferRequest(BaseModel):
    transport_id: int
    scheduled_pickup_date: Optional[datetime] = None


class CancelTransferRequest(BaseModel):
    reason: Optional[str] = None


# ---------- 基础资料 ----------

class CreateWarehouseRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    location: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    capacity: int = Field(default=0, ge=0)
    type: Literal["main", "secondary", "cold", "frozen", "distribution"] = "main"
    is_active: bool = True
    manager_id: Optional[int] = None


class CreateTransportRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: str = Field(min_length=1, max_length=50)
    capacity: int = Field(default=0, ge=0)
    location: Optional[str] = None
    vehicle_number: str = Field(min_length=1, max_length=50)
    driver_name: Optional[str] = None
    driver_contact: Optional[str] = None
    status: Literal["available", "in-use", "maintenance"] = "available"
    is_active: bool = True


class CreateProductRequest(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    sku: str = Field(min_length=1, max_length=100)
    category: Optional[str] = None
    description: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"), ge=0)


SHIPMENT_WIZARD = StepWizard(
    {
        0: ShipmentRouteStep,
        1: ShipmentItemsStep,
        2: ShipmentScheduleStep,
        3: ShipmentHandlingStep,
    },
    CreateShipmentRequest,
)
