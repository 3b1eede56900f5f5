"""Flutterwave v3 REST client: hosted payments, verification, customers."""

from paybroker.core.exceptions import UpstreamGatewayError
from paybroker.integrations.base import ClientMemo, GatewayClient, VerifiedPayment


class FlutterwaveClient(GatewayClient):
    provider = "flutterwave"
    base_url = "https://api.flutterwave.com/v3"

    def _data(self, body: dict):
        if body.get("status") != "success":
            raise UpstreamGatewayError(self.provider, body.get("message") or "request failed")
        return body.get("data")

    async def create_payment(
        self,
        *,
        tx_ref: str,
        amount: float,
        currency: str,
        redirect_url: str,
        payment_options: str,
        email: str,
        meta: dict,
        title: str,
        logo: str | None = None,
    ) -> str:
        """POST /payments. Returns the hosted checkout link."""
        customizations = {"title": title}
        if logo:
            customizations["logo"] = logo
        payload = {
            "tx_ref": tx_ref,
            "amount": amount,
            "currency": currency,
            "redirect_url": redirect_url,
            "payment_options": payment_options,
            "customer": {"email": email},
            "customizations": customizations,
            "meta": meta,
        }
        data = self._data(await self._request("POST", "/payments", json=payload))
        link = data.get("link") if isinstance(data, dict) else None
        if not link:
            raise UpstreamGatewayError(self.provider, "no payment link returned")
        return str(link)

    def _verified(self, data) -> VerifiedPayment:
        if not isinstance(data, dict):
            raise UpstreamGatewayError(self.provider, "response missing data")
        meta = data.get("meta")
        if not isinstance(meta, dict):
            meta = {}
        customer = data.get("customer") or {}
        status = str(data.get("status") or "")
        try:
            amount = float(data.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        return VerifiedPayment(
            provider=self.provider,
            reference=str(data.get("tx_ref") or ""),
            gateway_id=str(data.get("id") or ""),
            successful=status == "successful",
            status=status,
            amount=amount,
            currency=str(data.get("currency") or "").upper(),
            metadata=meta,
            customer_code=str(customer["id"]) if isinstance(customer, dict) and customer.get("id") else None,
        )

    async def verify_transaction(self, transaction_id: str) -> VerifiedPayment:
        """GET /transactions/{id}/verify using Flutterwave's numeric id."""
        body = await self._request("GET", f"/transactions/{transaction_id}/verify")
        return self._verified(self._data(body))

    async def verify_by_reference(self, tx_ref: str) -> VerifiedPayment:
        body = await self._request("GET", "/transactions/verify_by_reference", params={"tx_ref": tx_ref})
        return self._verified(self._data(body))

    async def find_customer(self, email: str) -> str | None:
        data = self._data(await self._request("POST", "/customers/search", json={"email": email}))
        if isinstance(data, list) and data:
            data = data[0]
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])
        return None

    async def create_customer(self, email: str, name: str | None = None) -> str:
        payload = {"email": email}
        if name:
            payload["name"] = name
        data = self._data(await self._request("POST", "/customers", json=payload))
        if not isinstance(data, dict) or not data.get("id"):
            raise UpstreamGatewayError(self.provider, "no customer id returned")
        return str(data["id"])


_memo = ClientMemo(FlutterwaveClient)


def get_flutterwave_client(secret_key: str) -> FlutterwaveClient:
    return _memo.get(secret_key)
