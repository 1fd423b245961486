"""
Idempotent seed: ensure one admin identity and its staff profile exist.
Credentials come from SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD; local/testing only.
"""
import asyncio
from database import get_db_context, IDENTITIES, USERS
from datetime import datetime, timezone
import os
import uuid
from pathlib import Path
from dotenv import load_dotenv
from auth import hash_password

load_dotenv(Path(__file__).resolve().parent / ".env")

SEED_ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com").strip().lower()
SEED_ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "Admin123!")
SEED_ADMIN_NAME = os.environ.get("SEED_ADMIN_NAME", "مدير النظام")


async def seed_database(db):
    print("Seeding database (idempotent)...")

    identity = await db[IDENTITIES].find_one({"email": SEED_ADMIN_EMAIL})
    if not identity:
        identity = {
            "uid": str(uuid.uuid4()),
            "email": SEED_ADMIN_EMAIL,
            "password_hash": hash_password(SEED_ADMIN_PASSWORD),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        await db[IDENTITIES].insert_one(identity)
        print(f"  ADMIN identity created: {SEED_ADMIN_EMAIL}")
    else:
        print(f"  ADMIN identity already exists: {SEED_ADMIN_EMAIL}")

    # Without a profile the identity cannot sign in
    profile = await db[USERS].find_one({"id": identity["uid"]})
    if not profile:
        await db[USERS].insert_one({
            "id": identity["uid"],
            "name": SEED_ADMIN_NAME,
            "email": SEED_ADMIN_EMAIL,
            "role": "admin",
        })
        print("  ADMIN profile created")
    else:
        print("  ADMIN profile already exists")

    print("Seed complete.")


async def main():
    async with get_db_context() as db:
        await seed_database(db)


if __name__ == "__main__":
    asyncio.run(main())
