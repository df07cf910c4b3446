from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
import sys

from musterai.domain.models import ApiKey
from musterai.persistence.db import SessionLocal
from musterai.services.audit import record_event
from musterai.services.auth.api_keys import generate_api_key


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create an API key for a subject")
    parser.add_argument("--subject", required=True, help="Subject id the key authenticates as")
    parser.add_argument("--name", required=True, help="Key label for auditing")
    parser.add_argument("--expires-in-days", type=int, default=None, help="Optional key lifetime")
    return parser


async def _create_key(args: argparse.Namespace) -> int:
    key_id, raw_key, key_prefix, key_hash = generate_api_key()
    expires_at = None
    if args.expires_in_days is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(days=args.expires_in_days)

    async with SessionLocal() as session:
        session.add(
            ApiKey(
                id=key_id,
                subject_id=args.subject,
                key_prefix=key_prefix,
                key_hash=key_hash,
                name=args.name,
                expires_at=expires_at,
            )
        )
        await session.commit()

    await record_event(
        SessionLocal,
        organization_id=None,
        actor_type="system",
        actor_id="create_api_key",
        event_type="auth.api_key.created",
        outcome="success",
        resource_type="api_key",
        resource_id=key_id,
        metadata={"subject_id": args.subject, "key_prefix": key_prefix, "key_name": args.name},
    )

    print("API key created:")
    print(f"  key_id: {key_id}")
    print(f"  key_prefix: {key_prefix}")
    print("  api_key: ")
    print(f"    {raw_key}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_key(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
