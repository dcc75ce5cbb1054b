"""Management CLI.

Usage:
    python -m agritrace.cli init-db                               # Create all tables
    python -m agritrace.cli create-identity <role> <name> <email> # Register a participant
    python -m agritrace.cli issue-token <identity_id>             # Print a bearer token
"""

import asyncio
import sys

import agritrace.models  # noqa: F401  (registers every table on Base.metadata)
from agritrace.auth.jwt import create_access_token
from agritrace.database import Base, async_session, engine
from agritrace.middleware.exceptions import AgriTraceException
from agritrace.models.identity import Identity
from agritrace.services.identities import create_identity


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"  Created {len(Base.metadata.tables)} table(s)")


async def add_identity(role: str, name: str, email: str):
    async with async_session() as db:
        try:
            identity = await create_identity(db, name=name, email=email, role=role)
            await db.commit()
        except AgriTraceException as exc:
            await db.rollback()
            print(f"  FAILED: {exc.message}")
            return 1
    print(f"  {identity.role.value} {identity.name}: {identity.id}")
    return 0


async def issue_token(identity_id: str):
    async with async_session() as db:
        identity = await db.get(Identity, identity_id)
    if identity is None:
        print(f"  Identity not found: {identity_id}")
        return 1
    print(create_access_token(identity.id, identity.role.value))
    return 0


async def _main(argv: list[str]) -> int:
    cmd = argv[1] if len(argv) > 1 else ""
    try:
        if cmd == "init-db":
            await init_db()
            return 0
        if cmd == "create-identity" and len(argv) == 5:
            return await add_identity(argv[2], argv[3], argv[4])
        if cmd == "issue-token" and len(argv) == 3:
            return await issue_token(argv[2])
    finally:
        await engine.dispose()

    print("Usage: python -m agritrace.cli [init-db|create-identity <role> <name> <email>|issue-token <identity_id>]")
    return 2


def main() -> None:
    sys.exit(asyncio.run(_main(sys.argv)))


if __name__ == "__main__":
    main()
