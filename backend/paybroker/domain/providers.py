"""Payment provider kinds, static support tables, and payment-method rules.

Pure domain functions. No DB access.
"""

from enum import StrEnum

from paybroker.domain.currency import CURRENCY_CONFIGS, is_african_country


class Provider(StrEnum):
    PAYSTACK = "paystack"
    FLUTTERWAVE = "flutterwave"
    STRIPE = "stripe"
    PAYPAL = "paypal"


class PaymentMethod(StrEnum):
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"


# Providers with a checkout adapter; the rest are known but never offered
INTEGRATED_PROVIDERS: tuple[Provider, ...] = (Provider.FLUTTERWAVE, Provider.PAYSTACK)

ALL_COUNTRIES = "ALL"

PROVIDER_COUNTRIES: dict[Provider, frozenset[str] | str] = {
    Provider.PAYSTACK: frozenset({"NG", "GH", "ZA", "KE"}),
    Provider.FLUTTERWAVE: ALL_COUNTRIES,
    Provider.STRIPE: ALL_COUNTRIES,
    Provider.PAYPAL: ALL_COUNTRIES,
}

PROVIDER_CURRENCIES: dict[Provider, frozenset[str]] = {
    Provider.PAYSTACK: frozenset({"NGN", "GHS", "ZAR", "KES", "USD"}),
    Provider.FLUTTERWAVE: frozenset(
        {"USD", "NGN", "GHS", "KES", "ZAR", "GBP", "EUR", "UGX", "RWF", "TZS", "XOF", "EGP"}
    ),
    Provider.STRIPE: frozenset({"USD", "GBP", "EUR", "ZAR"}),
    Provider.PAYPAL: frozenset({"USD", "GBP", "EUR"}),
}

PROVIDER_METHODS: dict[Provider, tuple[PaymentMethod, ...]] = {
    Provider.PAYSTACK: (PaymentMethod.CARD, PaymentMethod.MOBILE_MONEY),
    Provider.FLUTTERWAVE: (PaymentMethod.CARD, PaymentMethod.MOBILE_MONEY),
    Provider.STRIPE: (PaymentMethod.CARD, PaymentMethod.APPLE_PAY, PaymentMethod.GOOGLE_PAY),
    Provider.PAYPAL: (),
}

# Credential fields that must be non-empty for a provider to be enabled
REQUIRED_CREDENTIAL_FIELDS: dict[Provider, tuple[str, ...]] = {
    Provider.PAYSTACK: ("secretKey", "planCodePro", "planCodeBusiness"),
    Provider.FLUTTERWAVE: ("clientId", "clientSecret"),
    Provider.STRIPE: ("secretKey", "webhookSecret"),
    Provider.PAYPAL: ("clientId", "clientSecret"),
}

# Stored encrypted; masked on every read
SECRET_CREDENTIAL_FIELDS: dict[Provider, frozenset[str]] = {
    Provider.PAYSTACK: frozenset({"secretKey"}),
    Provider.FLUTTERWAVE: frozenset({"clientSecret", "encryptionKey", "webhookSecretHash"}),
    Provider.STRIPE: frozenset({"secretKey", "webhookSecret"}),
    Provider.PAYPAL: frozenset({"clientSecret"}),
}

# Currencies in which African local methods (mobile money, USSD...) make sense
LOCAL_METHOD_CURRENCIES = frozenset({"NGN", "GHS", "KES", "ZAR", "UGX", "RWF", "TZS", "XOF", "EGP"})

PAYSTACK_CHANNELS: dict[PaymentMethod, tuple[str, ...]] = {
    PaymentMethod.CARD: ("card",),
    PaymentMethod.MOBILE_MONEY: ("mobile_money",),
}
PAYSTACK_ALL_CHANNELS: tuple[str, ...] = ("card", "bank", "ussd", "qr", "mobile_money", "bank_transfer")

FLUTTERWAVE_METHOD_OPTIONS: dict[PaymentMethod, str] = {
    PaymentMethod.CARD: "card",
    PaymentMethod.MOBILE_MONEY: "mobilemoney,mpesa,ussd,account,banktransfer",
}
FLUTTERWAVE_ANY_OPTIONS = "card,mobilemoney,mpesa,ussd,account,banktransfer"

# Country-specific Flutterwave mobile-money rails
FLUTTERWAVE_COUNTRY_OPTIONS: dict[str, str] = {
    "KE": "mpesa",
    "TZ": "mobilemoneytanzania",
    "UG": "mobilemoneyuganda",
    "RW": "mobilemoneyrwanda",
    "GH": "mobilemoneyghana",
    "NG": "ussd,banktransfer,account",
}


def parse_provider(value: object) -> Provider | None:
    try:
        return Provider(str(value or "").strip().lower())
    except ValueError:
        return None


def parse_payment_method(value: object) -> PaymentMethod | None:
    try:
        return PaymentMethod(str(value or "").strip().lower())
    except ValueError:
        return None


def is_integrated(provider: Provider) -> bool:
    return provider in INTEGRATED_PROVIDERS


def provider_supports_country(
    provider: Provider,
    country_code: str,
    allowed_countries: frozenset[str] | None = None,
) -> bool:
    """Static support intersected with an optional admin allow-list.

    The allow-list only narrows; it can never add a country the provider
    does not support.
    """
    country = country_code.upper()
    static = PROVIDER_COUNTRIES[provider]
    statically_ok = static == ALL_COUNTRIES or country in static
    if not statically_ok:
        return False
    if allowed_countries:
        return country in allowed_countries
    return True


def provider_supports_currency(provider: Provider, currency: str) -> bool:
    return currency.upper() in PROVIDER_CURRENCIES[provider]


def provider_supports_method(provider: Provider, method: PaymentMethod) -> bool:
    return method in PROVIDER_METHODS[provider]


def supported_currencies(provider: Provider) -> list[str]:
    """Configured currencies the provider accepts, in table order."""
    return [code for code in CURRENCY_CONFIGS if provider_supports_currency(provider, code)]


def supported_countries(provider: Provider) -> list[str] | str:
    static = PROVIDER_COUNTRIES[provider]
    if static == ALL_COUNTRIES:
        return ALL_COUNTRIES
    return sorted(static)


def parse_allowed_countries(raw: object) -> frozenset[str] | None:
    """CSV allow-list override ("NG, gh") → {"NG", "GH"}; blank means no override."""
    text = str(raw or "").strip()
    if not text:
        return None
    codes = frozenset(part.strip().upper() for part in text.split(",") if part.strip())
    return codes or None


def methods_for_context(provider: Provider, country_code: str, currency: str) -> list[PaymentMethod]:
    """Methods a provider can offer for a given country and currency.

    Outside Africa only cards are offered. Inside Africa, local methods such
    as mobile money are offered only when charging in a local currency.
    """
    methods = PROVIDER_METHODS[provider]
    if not is_african_country(country_code):
        return [m for m in methods if m == PaymentMethod.CARD]
    if currency.upper() not in LOCAL_METHOD_CURRENCIES:
        return [m for m in methods if m == PaymentMethod.CARD]
    return list(methods)


def paystack_channels(method: PaymentMethod | None) -> list[str]:
    if method is None:
        return list(PAYSTACK_ALL_CHANNELS)
    return list(PAYSTACK_CHANNELS.get(method, ("card",)))


def flutterwave_payment_options(method: PaymentMethod | None, country_code: str | None = None) -> str:
    """Flutterwave ``payment_options`` string for a method, refined by country.

    Mobile money in a country with a dedicated rail is narrowed to that rail.
    """
    if method is None:
        return FLUTTERWAVE_ANY_OPTIONS
    if method == PaymentMethod.MOBILE_MONEY and country_code:
        country_rail = FLUTTERWAVE_COUNTRY_OPTIONS.get(country_code.upper())
        if country_rail:
            return country_rail
    return FLUTTERWAVE_METHOD_OPTIONS.get(method, "card")


def flutterwave_options_matrix() -> dict[str, object]:
    return {
        "any": FLUTTERWAVE_ANY_OPTIONS,
        "by_method": {m.value: opts for m, opts in FLUTTERWAVE_METHOD_OPTIONS.items()},
        "by_country": dict(FLUTTERWAVE_COUNTRY_OPTIONS),
    }
