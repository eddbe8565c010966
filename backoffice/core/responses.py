"""
Success envelope and pagination helpers shared by every router
"""
import math
from datetime import datetime, timezone
from typing import Any, Optional


def success_response(data: Any = None, message: str = "Success", meta: Optional[dict] = None) -> dict:
    """Wrap a payload as {success, message, data, meta}"""
    envelope_meta = {"timestamp": datetime.now(timezone.utc).isoformat()}
    if meta:
        envelope_meta.update(meta)
    return {
        "success": True,
        "message": message,
        "data": data,
        "meta": envelope_meta,
    }


def build_pagination(page: int, page_size: int, total_items: int) -> dict:
    total_pages = math.ceil(total_items / page_size) if page_size else 0
    return {
        "page": page,
        "page_size": page_size,
        "total_items": total_items,
        "total_pages": total_pages,
        "has_more": page < total_pages,
    }


def page_offset(page: int, page_size: int) -> int:
    return (max(page, 1) - 1) * page_size
