"""
Payment Service
Razorpay reporting for the finance team: settlements, refunds, payments and
gateway downtime

Amounts from Razorpay are in paise. Every gateway failure surfaces as a 502
PAYMENT_GATEWAY_ERROR.

Author: Back Office Team
Date: 2025-11-12
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional

import razorpay

from backoffice.core.config import settings
from backoffice.core.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 10
DEFAULT_SKIP = 0
SETTLEMENT_PAGE = 100

RAZORPAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
)


@lru_cache(maxsize=1)
def get_razorpay_client() -> razorpay.Client:
    """Shared Razorpay client (FastAPI dependency)"""
    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        raise GatewayError("Payment gateway is not configured")
    return razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))


def gateway_call(action: str, fn, *args, **kwargs):
    """Run a Razorpay SDK call, turning SDK errors into GatewayError"""
    try:
        return fn(*args, **kwargs)
    except RAZORPAY_ERRORS as e:
        logger.error(f"Razorpay {action} failed: {e}")
        raise GatewayError(f"Failed to {action}: {e}")


def format_inr(amount_in_paise) -> str:
    """12345678 -> '₹1,23,456.78' (Indian digit grouping)"""
    amount = Decimal(amount_in_paise or 0) / Decimal(100)
    sign = "-" if amount < 0 else ""
    rupees, paise = f"{abs(amount):.2f}".split(".")

    if len(rupees) > 3:
        head, tail = rupees[:-3], rupees[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        rupees = ",".join(groups + [tail])

    return f"{sign}₹{rupees}.{paise}"


def format_unix_date(timestamp, with_time: bool = False) -> Optional[str]:
    if not timestamp:
        return None
    moment = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    return moment.strftime("%d %b %Y, %I:%M %p" if with_time else "%d %b %Y")


def _window(count: Optional[int], skip: Optional[int], from_ts: Optional[int], to_ts: Optional[int]) -> Dict:
    query = {"count": count or DEFAULT_COUNT, "skip": skip or DEFAULT_SKIP}
    if from_ts is not None:
        query["from"] = from_ts
    if to_ts is not None:
        query["to"] = to_ts
    return query


def group_downtime(items: List[Dict]) -> List[Dict]:
    """Downtime events grouped by payment method, instrument named by bank, VPA handle or network"""
    grouped: Dict[str, List[Dict]] = {}
    for item in items:
        instrument = item.get("instrument") or {}
        label = instrument.get("bank") or instrument.get("vpa_handle") or instrument.get("network") or ""
        grouped.setdefault(item.get("method"), []).append({
            "status": item.get("status"),
            "severity": item.get("severity"),
            "instrument": label,
            "begin": format_unix_date(item.get("begin"), with_time=True) or "Not Available",
            "end": format_unix_date(item.get("end"), with_time=True),
            "scheduled": item.get("scheduled"),
            "message": item.get("message") or "",
        })
    return [{"method": method, "issues": issues} for method, issues in grouped.items()]


class PaymentService:

    def __init__(self, client: razorpay.Client):
        self.client = client

    def get_balance_summary(self) -> Dict:
        processed = gateway_call(
            "fetch settlements", self.client.settlement.all, {"status": "processed", "count": 1, "skip": 0}
        )
        pending = gateway_call(
            "fetch settlements", self.client.settlement.all, {"status": "in_process", "count": SETTLEMENT_PAGE}
        )
        created = gateway_call(
            "fetch settlements", self.client.settlement.all, {"status": "created", "count": SETTLEMENT_PAGE}
        )

        processed_items = processed.get("items") or []
        last_processed = processed_items[0].get("amount", 0) if processed_items else 0
        due_in_bank = sum(s.get("amount", 0) for s in pending.get("items") or [])

        upcoming = sorted(
            (s for s in created.get("items") or [] if s.get("amount", 0) > 0),
            key=lambda s: s.get("created_at") or 0,
        )
        upcoming = upcoming[0] if upcoming else None

        return {
            "totalDueInBank": format_inr(due_in_bank),
            "lastProcessedAmount": format_inr(last_processed),
            "upcomingSettlementAmount": format_inr(upcoming["amount"] if upcoming else 0),
            "upcomingSettlementDate": format_unix_date(upcoming.get("created_at")) if upcoming else None,
        }

    def get_refunds(self, count: int = DEFAULT_COUNT, skip: int = DEFAULT_SKIP,
                    from_ts: Optional[int] = None, to_ts: Optional[int] = None) -> Dict:
        return gateway_call("fetch refunds", self.client.refund.all, _window(count, skip, from_ts, to_ts))

    def search_refunds(self, payment_id: Optional[str] = None, order_id: Optional[str] = None,
                       count: int = DEFAULT_COUNT, skip: int = DEFAULT_SKIP) -> Dict:
        query = _window(count, skip, None, None)
        if payment_id:
            query["payment_id"] = payment_id
        elif order_id:
            query["order_id"] = order_id
        else:
            raise ValidationError("Please provide payment_id or order_id")
        return gateway_call("fetch refunds", self.client.refund.all, query)

    def get_payments(self, count: int = DEFAULT_COUNT, skip: int = DEFAULT_SKIP,
                     from_ts: Optional[int] = None, to_ts: Optional[int] = None) -> Dict:
        return gateway_call("fetch payments", self.client.payment.all, _window(count, skip, from_ts, to_ts))

    def get_downtime(self) -> List[Dict]:
        data = gateway_call("fetch downtime", self.client.payment.fetchDownTime)
        return group_downtime(data.get("items") or [])
