"""Currency tables, country mapping, and currency-aware rounding.

Pure domain functions. No DB access, fully deterministic.
"""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_CURRENCY = "USD"
DEFAULT_COUNTRY = "US"


@dataclass(frozen=True)
class CurrencyConfig:
    code: str
    symbol: str
    name: str
    decimals: int  # minor-unit exponent: 0, 2 or 3
    preferred_provider: str
    countries: tuple[str, ...] = field(default_factory=tuple)

    @property
    def minor_unit(self) -> int:
        return 10**self.decimals


CURRENCY_CONFIGS: dict[str, CurrencyConfig] = {
    c.code: c
    for c in (
        CurrencyConfig("USD", "$", "US Dollar", 2, "flutterwave", ("US",)),
        CurrencyConfig("NGN", "₦", "Nigerian Naira", 2, "paystack", ("NG",)),
        CurrencyConfig("GHS", "GH₵", "Ghanaian Cedi", 2, "paystack", ("GH",)),
        CurrencyConfig("KES", "KSh", "Kenyan Shilling", 2, "flutterwave", ("KE",)),
        CurrencyConfig("ZAR", "R", "South African Rand", 2, "paystack", ("ZA",)),
        CurrencyConfig("GBP", "£", "British Pound", 2, "flutterwave", ("GB",)),
        CurrencyConfig(
            "EUR",
            "€",
            "Euro",
            2,
            "flutterwave",
            ("DE", "FR", "IT", "ES", "NL", "BE", "AT", "IE", "PT", "FI", "GR"),
        ),
        CurrencyConfig("UGX", "USh", "Ugandan Shilling", 0, "flutterwave", ("UG",)),
        CurrencyConfig("RWF", "FRw", "Rwandan Franc", 0, "flutterwave", ("RW",)),
        CurrencyConfig("TZS", "TSh", "Tanzanian Shilling", 2, "flutterwave", ("TZ",)),
        CurrencyConfig(
            "XOF",
            "CFA",
            "West African CFA Franc",
            0,
            "flutterwave",
            ("SN", "CI", "BJ", "BF", "ML", "NE", "TG", "GW"),
        ),
        CurrencyConfig("EGP", "E£", "Egyptian Pound", 2, "flutterwave", ("EG",)),
        CurrencyConfig("TND", "DT", "Tunisian Dinar", 3, "flutterwave", ("TN",)),
    )
}

AFRICAN_COUNTRY_CODES = frozenset(
    """
    DZ AO BJ BW BF BI CV CM CF TD KM CG CD CI DJ EG GQ ER SZ ET GA GM GH GN GW KE
    LS LR LY MG MW ML MR MU MA MZ NA NE NG RW ST SN SC SL SO ZA SS SD TZ TG TN UG
    ZM ZW EH
    """.split()
)

# EU/EEA plus a few common EUR users; kept conservative
EUR_REGION_COUNTRY_CODES = frozenset(
    """
    AT BE BG HR CY CZ DK EE FI FR DE GR HU IE IT LV LT LU MT NL PL PT RO SK SI ES
    SE NO IS LI CH
    """.split()
)

# Placeholders emitted by CDNs for Tor, anonymous proxies, satellite providers
# and "unknown"
PLACEHOLDER_COUNTRY_CODES = frozenset({"XX", "T1", "A1", "A2", "O1", "EU", "AP", "ZZ"})

COUNTRY_HEADERS = ("x-checkout-country", "x-country", "cf-ipcountry", "x-vercel-ip-country")

_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_country_code(value: object) -> str | None:
    """Return an upper-cased ISO alpha-2 code, or None for anything else.

    CDN placeholder codes are treated as unknown.
    """
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    if not _COUNTRY_RE.match(normalized) or normalized in PLACEHOLDER_COUNTRY_CODES:
        return None
    return normalized


def normalize_currency_code(value: object) -> str | None:
    """Return a configured currency code, or None."""
    normalized = str(value or "").strip().upper()
    if _CURRENCY_RE.match(normalized) and normalized in CURRENCY_CONFIGS:
        return normalized
    return None


def detect_country_from_headers(headers) -> str:
    """First valid country from hosting/CDN headers, else the default country."""
    for name in COUNTRY_HEADERS:
        country = normalize_country_code(headers.get(name))
        if country:
            return country
    return DEFAULT_COUNTRY


def is_african_country(country_code: str) -> bool:
    return country_code.upper() in AFRICAN_COUNTRY_CODES


def is_eur_region_country(country_code: str) -> bool:
    return country_code.upper() in EUR_REGION_COUNTRY_CODES


def get_currency_config(code: str) -> CurrencyConfig:
    try:
        return CURRENCY_CONFIGS[code.upper()]
    except KeyError:
        raise ValueError(f"Unsupported currency: {code}") from None


def currency_for_country(country_code: str | None) -> CurrencyConfig:
    """Map a country to its checkout currency.

    1. Explicit per-country mapping.
    2. Rest of Africa: USD (no local pricing yet).
    3. EU/EEA region: EUR.
    4. Everything else, and invalid signals: the global default.
    """
    country = normalize_country_code(country_code)
    if country is None:
        return CURRENCY_CONFIGS[DEFAULT_CURRENCY]

    for config in CURRENCY_CONFIGS.values():
        if country in config.countries:
            return config

    if is_african_country(country):
        return CURRENCY_CONFIGS[DEFAULT_CURRENCY]
    if is_eur_region_country(country):
        return CURRENCY_CONFIGS["EUR"]
    return CURRENCY_CONFIGS[DEFAULT_CURRENCY]


def round_for_currency(amount: float | Decimal, currency: str) -> float:
    """Round half-up to the currency's minor-unit precision (0, 2 or 3 places)."""
    decimals = get_currency_config(currency).decimals
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP))


def to_minor_units(amount: float | Decimal, currency: str) -> int:
    """Major units → integer minor units (cents, kobo, fils...)."""
    config = get_currency_config(currency)
    return int((Decimal(str(amount)) * config.minor_unit).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> float:
    config = get_currency_config(currency)
    return float(Decimal(int(amount)) / config.minor_unit)


def format_currency(amount: float, currency: str) -> str:
    """Symbol-prefixed amount with exactly the currency's configured decimals."""
    config = get_currency_config(currency)
    rounded = round_for_currency(amount, currency)
    return f"{config.symbol}{rounded:,.{config.decimals}f}"


def recommended_provider(currency: str) -> str:
    return get_currency_config(currency).preferred_provider
