"""Re-encrypt stored gateway secrets under the primary credentials key.

Run after prepending a new key to CREDENTIALS_ENCRYPTION_KEYS. Prints the
rotation report, rewrites legacy plaintext and old-key secrets, then prints
the report again.
"""

import asyncio

from paybroker.db.base import close_db, get_session_factory, init_db
from paybroker.services.payment_settings_store import PaymentSettingsStore


def _print_report(report: list[dict]) -> None:
    if not report:
        print("  (no providers configured)")
    for entry in report:
        error = f" | error={entry['error']}" if entry["error"] else ""
        print(f"  {entry['provider']} | needs_rotation={entry['needs_rotation']}{error}")


async def main() -> None:
    await init_db()
    store = PaymentSettingsStore(get_session_factory())

    print("Before:")
    _print_report(await store.rotation_report())

    rewritten = await store.reencrypt()
    total = sum(rewritten.values())
    print(f"\nRe-encrypted {total} field(s):")
    for provider, count in sorted(rewritten.items()):
        print(f"  {provider}: {count}")

    print("\nAfter:")
    _print_report(await store.rotation_report())

    await close_db()


if __name__ == "__main__":
    asyncio.run(main())
