class PaymentError(Exception):
    """Base exception for the checkout broker.

    ``status_code`` is what the API boundary responds with; ``code`` is the
    error taxonomy bucket surfaced to callers and logs.
    """

    status_code: int = 500
    code: str = "INTERNAL"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CheckoutValidationError(PaymentError):
    """Bad input or an unsupported provider/country/currency/method combination."""

    status_code = 400
    code = "VALIDATION"


class ProviderNotIntegratedError(CheckoutValidationError):
    """Raised when a known provider has no checkout adapter."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Provider not integrated: {provider}")


class CheckoutInProgressError(PaymentError):
    """A session for the same idempotency key is still being created."""

    status_code = 409
    code = "VALIDATION"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Checkout session for {reference} is already in progress")


class UpstreamGatewayError(PaymentError):
    """Payment gateway API error or timeout."""

    status_code = 502
    code = "UPSTREAM_GATEWAY"

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ConfigurationError(PaymentError):
    """Operational misconfiguration (missing keys, missing credentials).

    Messages must never contain secret material.
    """

    status_code = 500
    code = "CONFIGURATION"


class CredentialDecryptionError(ConfigurationError):
    """Stored secrets could not be decrypted with any configured key."""


class RateLimitExceededError(PaymentError):
    status_code = 429
    code = "RATE_LIMIT"

    def __init__(self, source: str):
        self.source = source
        super().__init__("Too many requests")


class ReconciliationError(PaymentError):
    """Verified payment could not be applied. No value is granted."""

    status_code = 400
    code = "VALIDATION"

    def __init__(self, message: str, reference: str | None = None):
        self.reference = reference
        super().__init__(message)


class PaymentNotSuccessfulError(ReconciliationError):
    pass


class MetadataValidationError(ReconciliationError):
    """Verified metadata is missing, malformed, or not owned by the caller."""

    def __init__(self, message: str, reference: str | None = None, status_code: int = 400):
        super().__init__(message, reference)
        self.status_code = status_code


class AmountMismatchError(ReconciliationError):
    def __init__(self, reference: str, expected: float, received: float, currency: str):
        self.expected = expected
        self.received = received
        self.currency = currency
        super().__init__(
            f"Amount mismatch for {reference}: expected {expected} {currency}, got {received}",
            reference,
        )
