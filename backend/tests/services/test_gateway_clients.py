"""Tests for the Paystack and Flutterwave REST clients over a mock transport."""

import json

import httpx
import pytest

from paybroker.core.exceptions import UpstreamGatewayError
from paybroker.integrations.base import ClientMemo
from paybroker.integrations.flutterwave import FlutterwaveClient
from paybroker.integrations.paystack import PaystackClient

pytestmark = pytest.mark.unit


def transport(handler):
    calls: list[httpx.Request] = []

    def _handle(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    return httpx.MockTransport(_handle), calls


class TestPaystackClient:
    async def test_initialize_sends_minor_units_and_bearer(self):
        mock, calls = transport(
            lambda r: httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {"authorization_url": "https://checkout.paystack.com/x", "access_code": "ac"},
                },
            )
        )
        client = PaystackClient("sk_test", transport=mock)

        data = await client.initialize_transaction(
            email="ada@example.com",
            amount_minor=1500000,
            currency="NGN",
            reference="pro_ref",
            callback_url="https://app.example.com/ok?reference=pro_ref",
            metadata={"planId": "pro"},
            plan_code="PLN_pro",
            channels=["card"],
        )

        assert data["authorization_url"] == "https://checkout.paystack.com/x"
        sent = json.loads(calls[0].content)
        assert calls[0].url.path == "/transaction/initialize"
        assert calls[0].headers["Authorization"] == "Bearer sk_test"
        assert sent["amount"] == 1500000
        assert sent["plan"] == "PLN_pro"
        assert sent["channels"] == ["card"]
        assert sent["metadata"]["custom_fields"][0]["value"] == "pro"

    async def test_verify_normalizes_amount_and_string_metadata(self):
        body = {
            "status": True,
            "data": {
                "id": 42,
                "reference": "pro_ref",
                "status": "success",
                "amount": 1500000,
                "currency": "ngn",
                "metadata": json.dumps({"userId": "u", "planId": "pro"}),
                "customer": {"customer_code": "CUS_1"},
                "plan_object": {"subscription_code": "SUB_1"},
            },
        }
        mock, _ = transport(lambda r: httpx.Response(200, json=body))

        verified = await PaystackClient("sk_test", transport=mock).verify_transaction("pro_ref")

        assert verified.successful is True
        assert verified.amount == 15000.0
        assert verified.currency == "NGN"
        assert verified.metadata["planId"] == "pro"
        assert verified.customer_code == "CUS_1"
        assert verified.subscription_code == "SUB_1"

    async def test_abandoned_is_not_successful(self):
        body = {"status": True, "data": {"reference": "r", "status": "abandoned", "amount": 0, "currency": "NGN"}}
        mock, _ = transport(lambda r: httpx.Response(200, json=body))
        verified = await PaystackClient("sk_test", transport=mock).verify_transaction("r")
        assert verified.successful is False

    async def test_error_response_raises_upstream_error(self):
        mock, _ = transport(lambda r: httpx.Response(400, json={"status": False, "message": "Invalid key"}))
        with pytest.raises(UpstreamGatewayError) as exc_info:
            await PaystackClient("sk_test", transport=mock).verify_transaction("r")
        assert "Invalid key" in exc_info.value.message
        assert "sk_test" not in exc_info.value.message

    async def test_timeout_raises_upstream_error(self):
        def _timeout(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamGatewayError) as exc_info:
            await PaystackClient("sk_test", transport=httpx.MockTransport(_timeout)).create_customer("a@b.co")
        assert exc_info.value.status_code == 502


class TestFlutterwaveClient:
    async def test_create_payment_returns_link(self):
        mock, calls = transport(
            lambda r: httpx.Response(200, json={"status": "success", "data": {"link": "https://flw.link/pay"}})
        )
        link = await FlutterwaveClient("FLWSECK", transport=mock).create_payment(
            tx_ref="pro_ref",
            amount=1200.0,
            currency="KES",
            redirect_url="https://app.example.com/ok",
            payment_options="mpesa",
            email="ada@example.com",
            meta={"planId": "pro"},
            title="Checkout Pro",
        )
        assert link == "https://flw.link/pay"
        sent = json.loads(calls[0].content)
        assert sent["payment_options"] == "mpesa"
        assert sent["amount"] == 1200.0
        assert "logo" not in sent["customizations"]

    async def test_verify_by_reference(self):
        body = {
            "status": "success",
            "data": {
                "id": 987,
                "tx_ref": "pro_ref",
                "status": "successful",
                "amount": 1200,
                "currency": "KES",
                "meta": {"userId": "u"},
                "customer": {"id": 55},
            },
        }
        mock, calls = transport(lambda r: httpx.Response(200, json=body))

        verified = await FlutterwaveClient("FLWSECK", transport=mock).verify_by_reference("pro_ref")

        assert calls[0].url.params["tx_ref"] == "pro_ref"
        assert verified.reference == "pro_ref"
        assert verified.gateway_id == "987"
        assert verified.amount == 1200.0
        assert verified.customer_code == "55"

    async def test_find_customer_none(self):
        mock, _ = transport(lambda r: httpx.Response(200, json={"status": "success", "data": []}))
        assert await FlutterwaveClient("FLWSECK", transport=mock).find_customer("a@b.co") is None


class TestClientMemo:
    def test_reused_until_secret_changes(self):
        memo = ClientMemo(PaystackClient)
        first = memo.get("sk_one")
        assert memo.get("sk_one") is first
        assert memo.get("sk_two") is not first
