"""PaymentSettingsStore: per-gateway credentials with encrypted secrets.

Reads for admin screens never decrypt: secrets are replaced with a fixed mask.
Only ``get_runtime_config`` decrypts, for server-side gateway calls.
"""

from dataclasses import dataclass, field

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paybroker.core.crypto import CredentialCipher, is_encrypted_value
from paybroker.core.exceptions import CheckoutValidationError, ConfigurationError
from paybroker.db.models.payment_setting import PaymentSetting
from paybroker.domain.providers import SECRET_CREDENTIAL_FIELDS, Provider

logger = structlog.get_logger(__name__)

MASK_TOKEN = "••••••••••••••••"


@dataclass
class ProviderRuntimeConfig:
    """Decrypted, server-internal view of a provider's settings."""

    provider: Provider
    is_active: bool
    credentials: dict[str, str] = field(default_factory=dict)
    needs_rotation: bool = False

    def get(self, name: str) -> str:
        return (self.credentials.get(name) or "").strip()


def mask_credentials(provider: Provider, stored: dict) -> dict[str, str]:
    secret_fields = SECRET_CREDENTIAL_FIELDS[provider]
    masked: dict[str, str] = {}
    for name, value in (stored or {}).items():
        if name in secret_fields:
            if value:
                masked[name] = MASK_TOKEN
        elif isinstance(value, str):
            masked[name] = value
    return masked


class PaymentSettingsStore:
    """Credential persistence. Uses DI for session_factory and cipher."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: CredentialCipher | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.cipher = cipher or CredentialCipher.from_settings()

    async def _load(self, session: AsyncSession, provider: Provider) -> PaymentSetting | None:
        result = await session.execute(select(PaymentSetting).where(PaymentSetting.provider == provider.value))
        return result.scalar_one_or_none()

    def _decrypt_field(self, value: object) -> tuple[str, bool]:
        """Returns (plaintext, needs_rotation). Legacy plaintext counts as needing rotation."""
        if is_encrypted_value(value):
            result = self.cipher.decrypt(value)
            return result.plaintext, result.needs_rotation
        if isinstance(value, str):
            return value, bool(value)
        return "", False

    async def get_runtime_config(self, provider: Provider) -> ProviderRuntimeConfig | None:
        """Decrypt a provider's credentials for server-side use.

        Returns None when no record exists. Raises ConfigurationError (or its
        CredentialDecryptionError subclass) when secrets cannot be decrypted.
        """
        async with self.session_factory() as session:
            row = await self._load(session, provider)
        if row is None:
            return None

        secret_fields = SECRET_CREDENTIAL_FIELDS[provider]
        credentials: dict[str, str] = {}
        needs_rotation = False
        for name, value in (row.credentials or {}).items():
            if name in secret_fields:
                plaintext, rotate = self._decrypt_field(value)
                credentials[name] = plaintext
                needs_rotation = needs_rotation or rotate
            elif isinstance(value, str):
                credentials[name] = value

        return ProviderRuntimeConfig(
            provider=provider,
            is_active=bool(row.is_active),
            credentials=credentials,
            needs_rotation=needs_rotation,
        )

    async def list_masked(self) -> list[dict]:
        """Every known provider with masked credentials; unconfigured ones included."""
        async with self.session_factory() as session:
            result = await session.execute(select(PaymentSetting))
            rows = {row.provider: row for row in result.scalars().all()}

        listing = []
        for provider in Provider:
            row = rows.get(provider.value)
            listing.append(
                {
                    "provider": provider.value,
                    "is_active": bool(row.is_active) if row else False,
                    "configured": row is not None,
                    "credentials": mask_credentials(provider, row.credentials) if row else {},
                    "updated_at": row.updated_at if row else None,
                }
            )
        return listing

    async def save(
        self,
        provider: Provider,
        is_active: bool,
        credentials: dict[str, str | None],
    ) -> dict:
        """Upsert a provider's settings and return the masked view.

        Secret fields: plaintext is encrypted; the mask token, an empty string
        or None keeps the stored secret. Non-secret fields: None keeps, empty
        string clears.
        """
        secret_fields = SECRET_CREDENTIAL_FIELDS[provider]

        async with self.session_factory() as session:
            row = await self._load(session, provider)
            if row is None:
                row = PaymentSetting(provider=provider.value, is_active=False, credentials={})
                session.add(row)

            merged = dict(row.credentials or {})
            for name, value in credentials.items():
                if value is not None and not isinstance(value, str):
                    raise CheckoutValidationError(f"Credential field {name} must be a string")
                if name in secret_fields:
                    if value is None or value == "" or value == MASK_TOKEN:
                        continue
                    merged[name] = self.cipher.encrypt(value.strip())
                else:
                    if value is None:
                        continue
                    if value.strip() == "":
                        merged.pop(name, None)
                    else:
                        merged[name] = value.strip()

            row.is_active = bool(is_active)
            row.credentials = merged
            await session.commit()

            logger.info(
                "payment_settings_saved",
                provider=provider.value,
                is_active=row.is_active,
                fields=sorted(merged),
            )
            return {
                "provider": provider.value,
                "is_active": row.is_active,
                "configured": True,
                "credentials": mask_credentials(provider, merged),
            }

    async def reencrypt(self) -> dict[str, int]:
        """Re-encrypt legacy plaintext secrets and secrets under non-primary keys.

        Returns the number of fields rewritten per provider.
        """
        rewritten: dict[str, int] = {}
        async with self.session_factory() as session:
            result = await session.execute(select(PaymentSetting))
            for row in result.scalars().all():
                provider = Provider(row.provider)
                secret_fields = SECRET_CREDENTIAL_FIELDS[provider]
                merged = dict(row.credentials or {})
                count = 0
                for name in secret_fields:
                    value = merged.get(name)
                    if not value:
                        continue
                    plaintext, rotate = self._decrypt_field(value)
                    if rotate:
                        merged[name] = self.cipher.encrypt(plaintext)
                        count += 1
                if count:
                    row.credentials = merged
                    rewritten[provider.value] = count
            await session.commit()

        logger.info("payment_settings_reencrypted", providers=sorted(rewritten))
        return rewritten

    async def rotation_report(self) -> list[dict]:
        """Which providers hold secrets that are not under the primary key."""
        report = []
        for provider in Provider:
            try:
                runtime = await self.get_runtime_config(provider)
            except ConfigurationError as exc:
                report.append({"provider": provider.value, "needs_rotation": True, "error": exc.message})
                continue
            if runtime is None:
                continue
            report.append({"provider": provider.value, "needs_rotation": runtime.needs_rotation, "error": None})
        return report
