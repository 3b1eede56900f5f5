"""Paystack REST client: transaction initialize/verify and customers."""

import json

from paybroker.core.exceptions import UpstreamGatewayError
from paybroker.domain.currency import from_minor_units
from paybroker.integrations.base import ClientMemo, GatewayClient, VerifiedPayment


class PaystackClient(GatewayClient):
    provider = "paystack"
    base_url = "https://api.paystack.co"

    def _data(self, body: dict) -> dict:
        if body.get("status") is not True:
            raise UpstreamGatewayError(self.provider, body.get("message") or "request failed")
        data = body.get("data")
        if not isinstance(data, dict):
            raise UpstreamGatewayError(self.provider, "response missing data")
        return data

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount_minor: int,
        currency: str,
        reference: str,
        callback_url: str,
        metadata: dict,
        plan_code: str | None = None,
        channels: list[str] | None = None,
    ) -> dict:
        """POST /transaction/initialize. Returns ``data`` with ``authorization_url``."""
        payload = {
            "email": email,
            "amount": amount_minor,
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": {
                **metadata,
                "custom_fields": [
                    {"display_name": "Plan", "variable_name": "plan", "value": metadata.get("planId")},
                ],
            },
        }
        if plan_code:
            payload["plan"] = plan_code
        if channels:
            payload["channels"] = channels

        data = self._data(await self._request("POST", "/transaction/initialize", json=payload))
        if not data.get("authorization_url"):
            raise UpstreamGatewayError(self.provider, "no authorization_url returned")
        return data

    async def verify_transaction(self, reference: str) -> VerifiedPayment:
        data = self._data(await self._request("GET", f"/transaction/verify/{reference}"))

        metadata = data.get("metadata")
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError:
                metadata = {}
        if not isinstance(metadata, dict):
            metadata = {}

        currency = str(data.get("currency") or "").upper()
        customer = data.get("customer") or {}
        plan_object = data.get("plan_object") or {}
        status = str(data.get("status") or "")
        try:
            amount = from_minor_units(int(data.get("amount") or 0), currency)
        except ValueError:
            amount = 0.0

        return VerifiedPayment(
            provider=self.provider,
            reference=str(data.get("reference") or reference),
            gateway_id=str(data.get("id") or ""),
            successful=status == "success",
            status=status,
            amount=amount,
            currency=currency,
            metadata=metadata,
            customer_code=customer.get("customer_code") if isinstance(customer, dict) else None,
            subscription_code=plan_object.get("subscription_code") if isinstance(plan_object, dict) else None,
        )

    async def create_customer(self, email: str, first_name: str | None = None) -> str:
        """POST /customer. Paystack returns the existing record for a known email."""
        payload = {"email": email}
        if first_name:
            payload["first_name"] = first_name
        data = self._data(await self._request("POST", "/customer", json=payload))
        code = data.get("customer_code")
        if not code:
            raise UpstreamGatewayError(self.provider, "no customer_code returned")
        return str(code)


_memo = ClientMemo(PaystackClient)


def get_paystack_client(secret_key: str) -> PaystackClient:
    return _memo.get(secret_key)
