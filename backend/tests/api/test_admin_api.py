"""Tests for the admin routes: gateway credentials and pricing overrides."""

import pytest

from paybroker.core.auth import AuthUser
from paybroker.core.crypto import CredentialCipher, derive_key
from paybroker.db.models.payment_setting import PaymentSetting
from paybroker.domain.providers import Provider

pytestmark = pytest.mark.integration

ADMIN = AuthUser(
    user_id="1a2b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d",
    email="admin@example.com",
    claims={"app_metadata": {"role": "admin"}},
)
MEMBER = AuthUser(user_id="0b7f6a4e-3c2d-4e1f-9a8b-7c6d5e4f3a2b", email="ada@example.com", claims={})

PAYSTACK_BODY = {
    "is_active": True,
    "credentials": {
        "secretKey": "sk_live_very_secret",
        "publicKey": "pk_live_public",
        "planCodePro": "PLN_pro",
        "planCodeBusiness": "PLN_business",
    },
}


class TestAccess:
    def test_anonymous_is_401(self, api_client):
        assert api_client.get("/api/admin/payment-settings").status_code == 401

    def test_non_admin_is_403(self, api_client, login):
        login(MEMBER)
        assert api_client.get("/api/admin/payment-settings").status_code == 403
        assert api_client.put("/api/admin/pricing", json={}).status_code == 403


class TestPaymentSettings:
    def test_save_returns_masked_secrets(self, api_client, login, fetch_all):
        login(ADMIN)
        response = api_client.put("/api/admin/payment-settings/paystack", json=PAYSTACK_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "paystack"
        assert data["is_active"] is True
        assert data["configured"] is True
        assert data["credentials"]["secretKey"] != "sk_live_very_secret"
        assert data["credentials"]["publicKey"] == "pk_live_public"
        assert "sk_live_very_secret" not in response.text

        stored = fetch_all(PaymentSetting)[0].credentials
        assert stored["secretKey"] != "sk_live_very_secret"
        assert CredentialCipher.from_settings().decrypt(stored["secretKey"]).plaintext == "sk_live_very_secret"

    def test_list_never_exposes_plaintext(self, api_client, login):
        login(ADMIN)
        api_client.put("/api/admin/payment-settings/paystack", json=PAYSTACK_BODY)

        response = api_client.get("/api/admin/payment-settings")

        assert response.status_code == 200
        assert "sk_live_very_secret" not in response.text
        paystack = next(p for p in response.json() if p["provider"] == "paystack")
        assert paystack["credentials"]["planCodePro"] == "PLN_pro"

    def test_masked_secret_round_trip_keeps_stored_value(self, api_client, login, fetch_all):
        login(ADMIN)
        masked = api_client.put("/api/admin/payment-settings/paystack", json=PAYSTACK_BODY).json()
        before = fetch_all(PaymentSetting)[0].credentials["secretKey"]

        api_client.put(
            "/api/admin/payment-settings/paystack",
            json={"is_active": False, "credentials": masked["credentials"]},
        )

        row = fetch_all(PaymentSetting)[0]
        assert row.is_active is False
        assert row.credentials["secretKey"] == before

    def test_unknown_provider_is_400(self, api_client, login):
        login(ADMIN)
        response = api_client.put("/api/admin/payment-settings/square", json=PAYSTACK_BODY)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"

    def test_saved_settings_enable_the_provider(self, api_client, login):
        login(ADMIN)
        api_client.put("/api/admin/payment-settings/paystack", json=PAYSTACK_BODY)

        data = api_client.get("/api/pricing", params={"country": "NG"}).json()
        assert data["eligibility"]["paystack"]["allowed"] is True


class TestKeyRotation:
    def test_plaintext_secret_is_reported_and_reencrypted(self, api_client, login, sync_db, fetch_all):
        sync_db.add(
            PaymentSetting(
                provider=Provider.PAYSTACK.value,
                is_active=True,
                credentials={"secretKey": "sk_test_legacy_plaintext", "planCodePro": "PLN_pro"},
            )
        )
        sync_db.commit()
        login(ADMIN)

        report = api_client.get("/api/admin/payment-settings/rotation").json()
        assert {"provider": "paystack", "needs_rotation": True, "error": None} in report

        response = api_client.post("/api/admin/payment-settings/reencrypt")
        assert response.status_code == 200
        assert response.json() == {"rewritten": {"paystack": 1}}

        stored = fetch_all(PaymentSetting)[0].credentials["secretKey"]
        assert stored != "sk_test_legacy_plaintext"
        assert CredentialCipher.from_settings().decrypt(stored).plaintext == "sk_test_legacy_plaintext"

        report = api_client.get("/api/admin/payment-settings/rotation").json()
        assert {"provider": "paystack", "needs_rotation": False, "error": None} in report

    def test_undecryptable_secret_is_reported(self, api_client, login, sync_db):
        foreign = CredentialCipher([derive_key("some-other-deployment")])
        sync_db.add(
            PaymentSetting(
                provider=Provider.PAYSTACK.value,
                is_active=True,
                credentials={"secretKey": foreign.encrypt("sk_test_x")},
            )
        )
        sync_db.commit()
        login(ADMIN)

        report = api_client.get("/api/admin/payment-settings/rotation").json()
        paystack = next(r for r in report if r["provider"] == "paystack")
        assert paystack["needs_rotation"] is True
        assert paystack["error"]


class TestPricingOverrides:
    def test_defaults_are_empty(self, api_client, login):
        login(ADMIN)
        assert api_client.get("/api/admin/pricing").json() == {"local_prices": {}, "fx_rates": {}}

    def test_override_is_reflected_in_quotes(self, api_client, login):
        login(ADMIN)
        body = {"local_prices": {"pro": {"ngn": 12000}}, "fx_rates": {"TND": 3.1}}

        response = api_client.put("/api/admin/pricing", json=body)

        assert response.status_code == 200
        assert response.json() == {"local_prices": {"pro": {"NGN": 12000.0}}, "fx_rates": {"TND": 3.1}}

        quote = api_client.get("/api/pricing", params={"country": "NG"}).json()
        assert quote["tiers"]["pro"]["monthly"] == 12000
        assert quote["tiers"]["pro"]["source"] == "override"

    @pytest.mark.parametrize(
        "body",
        [
            {"local_prices": {"platinum": {"NGN": 100}}},
            {"local_prices": {"pro": {"JPY": 100}}},
            {"local_prices": {"pro": {"NGN": -5}}},
            {"fx_rates": {"KES": 0}},
        ],
    )
    def test_invalid_overrides_are_rejected(self, api_client, login, body):
        login(ADMIN)
        response = api_client.put("/api/admin/pricing", json=body)

        assert response.status_code == 400
        assert api_client.get("/api/admin/pricing").json() == {"local_prices": {}, "fx_rates": {}}
