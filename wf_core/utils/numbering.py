"""
单号生成
基于时间戳 + 随机数，不保证全局唯一，调用方负责查重
"""
import random
import secrets
import time
import uuid
from datetime import datetime, timezone


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_shipment_number() -> str:
    return f"SH{_now_ms()}{random.randint(0, 999)}"


def generate_tracking_number() -> str:
    return f"TK{_now_ms()}{random.randint(0, 9999)}"


def generate_transfer_number() -> str:
    return f"ST{str(_now_ms())[-6:]}{secrets.token_hex(2).upper()}"


def generate_batch_number(prefix: str = "B") -> str:
    """批次号，如 B20261019-1A2B3C4D；调拨入库批次使用 TR 前缀"""
    day = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{prefix}{day}-{uuid.uuid4().hex[:8].upper()}"
