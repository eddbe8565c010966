"""
Tests for the Razorpay reporting service

Author: Back Office Team
Date: 2025-11-14
"""
from unittest.mock import patch

import pytest
import razorpay

from backoffice.core.errors import GatewayError, ValidationError
from backoffice.services.payment_service import (
    PaymentService,
    format_inr,
    format_unix_date,
    gateway_call,
    get_razorpay_client,
    group_downtime,
)

# 2025-11-14 00:00:00 UTC
NOV_14 = 1763078400


class TestFormatting:

    @pytest.mark.parametrize("paise, expected", [
        (12345678, "₹1,23,456.78"),
        (0, "₹0.00"),
        (None, "₹0.00"),
        (99900, "₹999.00"),
        (100000, "₹1,000.00"),
        (1000000000, "₹1,00,00,000.00"),
        (-250050, "-₹2,500.50"),
    ])
    def test_format_inr(self, paise, expected):
        assert format_inr(paise) == expected

    def test_format_unix_date(self):
        assert format_unix_date(NOV_14) == "14 Nov 2025"
        assert format_unix_date(NOV_14 + 13 * 3600 + 5 * 60, with_time=True) == "14 Nov 2025, 01:05 PM"
        assert format_unix_date(None) is None


class TestGatewayCall:

    def test_passes_result_through(self):
        assert gateway_call("fetch", lambda x: x * 2, 21) == 42

    def test_sdk_errors_become_gateway_errors(self):
        def boom():
            raise razorpay.errors.BadRequestError("The id provided does not exist")

        with pytest.raises(GatewayError, match="Failed to fetch refunds") as exc:
            gateway_call("fetch refunds", boom)

        assert exc.value.status_code == 502
        assert exc.value.code == "PAYMENT_GATEWAY_ERROR"

    def test_unconfigured_client(self):
        get_razorpay_client.cache_clear()
        with patch("backoffice.services.payment_service.settings") as mock_settings:
            mock_settings.RAZORPAY_KEY_ID = ""
            mock_settings.RAZORPAY_KEY_SECRET = ""

            with pytest.raises(GatewayError, match="not configured"):
                get_razorpay_client()
        get_razorpay_client.cache_clear()


class TestPaymentService:

    def test_balance_summary(self, razorpay_client):
        def settlements(query):
            return {
                "processed": {"items": [{"amount": 500000}]},
                "in_process": {"items": [{"amount": 100000}, {"amount": 23456}]},
                "created": {"items": [
                    {"amount": 0, "created_at": NOV_14 - 86400},
                    {"amount": 75000, "created_at": NOV_14 + 86400},
                    {"amount": 42000, "created_at": NOV_14},
                ]},
            }[query["status"]]
        razorpay_client.settlement.all.side_effect = settlements

        summary = PaymentService(razorpay_client).get_balance_summary()

        assert summary == {
            "totalDueInBank": "₹1,234.56",
            "lastProcessedAmount": "₹5,000.00",
            "upcomingSettlementAmount": "₹420.00",
            "upcomingSettlementDate": "14 Nov 2025",
        }

    def test_balance_summary_without_settlements(self, razorpay_client):
        razorpay_client.settlement.all.return_value = {"items": []}

        summary = PaymentService(razorpay_client).get_balance_summary()

        assert summary["totalDueInBank"] == "₹0.00"
        assert summary["upcomingSettlementDate"] is None

    def test_refunds_window_defaults(self, razorpay_client):
        razorpay_client.refund.all.return_value = {"items": []}

        PaymentService(razorpay_client).get_refunds(count=None, skip=None, from_ts=NOV_14)

        razorpay_client.refund.all.assert_called_once_with({"count": 10, "skip": 0, "from": NOV_14})

    def test_search_refunds_prefers_payment_id(self, razorpay_client):
        PaymentService(razorpay_client).search_refunds(payment_id="pay_1", order_id="order_1")

        query = razorpay_client.refund.all.call_args.args[0]
        assert query["payment_id"] == "pay_1"
        assert "order_id" not in query

    def test_search_refunds_needs_an_id(self, razorpay_client):
        with pytest.raises(ValidationError):
            PaymentService(razorpay_client).search_refunds()

    def test_payments_gateway_error(self, razorpay_client):
        razorpay_client.payment.all.side_effect = razorpay.errors.ServerError("Server down")

        with pytest.raises(GatewayError):
            PaymentService(razorpay_client).get_payments()

    def test_downtime_grouped_by_method(self, razorpay_client):
        razorpay_client.payment.fetchDownTime.return_value = {"items": [
            {"method": "upi", "status": "started", "severity": "high", "instrument": {"vpa_handle": "okhdfc"},
             "begin": NOV_14},
            {"method": "netbanking", "status": "scheduled", "severity": "low", "instrument": {"bank": "SBIN"},
             "begin": None, "scheduled": True},
            {"method": "upi", "status": "resolved", "severity": "low", "instrument": {},
             "begin": NOV_14, "end": NOV_14 + 3600},
        ]}

        grouped = PaymentService(razorpay_client).get_downtime()

        assert [g["method"] for g in grouped] == ["upi", "netbanking"]
        assert [i["instrument"] for i in grouped[0]["issues"]] == ["okhdfc", ""]
        assert grouped[1]["issues"][0]["begin"] == "Not Available"
        assert grouped[0]["issues"][1]["end"] == "14 Nov 2025, 01:00 AM"

    def test_group_downtime_empty(self):
        assert group_downtime([]) == []
