from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

SUBSCRIPTIONS = "subscriptions"
RECYCLED_SUBSCRIPTIONS = "recycledSubscriptions"
TASKS = "tasks"
USERS = "users"
IDENTITIES = "identities"


def _new_client(mongo_url: str) -> AsyncIOMotorClient:
    # tz_aware so BSON datetimes come back as UTC-aware datetimes
    return AsyncIOMotorClient(mongo_url, tz_aware=True)


class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = _new_client(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    def get_client(self):
        """Client handle, needed to open sessions for multi-document transactions."""
        return self.client

    async def _create_indexes(self):
        """Create MongoDB indexes for efficient queries."""
        try:
            await self.db[SUBSCRIPTIONS].create_index("id", unique=True)
            await self.db[SUBSCRIPTIONS].create_index("tier")
            await self.db[SUBSCRIPTIONS].create_index("clientId")
            await self.db[SUBSCRIPTIONS].create_index("endDate")

            await self.db[RECYCLED_SUBSCRIPTIONS].create_index("id", unique=True)

            # Automatic tasks - cascade deletes and per-subscription listing go through subscriptionId
            await self.db[TASKS].create_index("id", unique=True)
            await self.db[TASKS].create_index("subscriptionId")
            await self.db[TASKS].create_index([("status", 1), ("dueDate", 1)])

            await self.db[USERS].create_index("id", unique=True)
            await self.db[IDENTITIES].create_index("uid", unique=True)
            await self.db[IDENTITIES].create_index("email", unique=True)
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

@asynccontextmanager
async def get_db_context():
    """Context manager for standalone scripts to access the database.

    Usage in scripts:
        async with get_db_context() as db:
            await db.subscriptions.find_one(...)
    """
    client = None
    try:
        mongo_url = os.environ['MONGO_URL']
        db_name = os.environ['DB_NAME']
        client = _new_client(mongo_url)
        db = client[db_name]
        # Verify connection
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        if client:
            client.close()
            logger.info("Script MongoDB connection closed")
