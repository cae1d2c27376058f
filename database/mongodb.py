from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from bson import ObjectId
from bson.errors import InvalidId
from typing import Any, List, Optional
import logging

logger = logging.getLogger(__name__)

# Every ledger/inventory read filters on the tenant first
TENANT_INDEXES = {
    "lens_inventory": [("user_id", 1)],
    "sales": [("user_id", 1), ("customerId", 1), ("invoiceDate", 1)],
    "purchases": [("user_id", 1), ("vendorId", 1)],
    "transactions": [("user_id", 1), ("entityId", 1)],
    "customers": [("user_id", 1)],
    "vendors": [("user_id", 1)],
}


def id_candidates(doc_id: str) -> List[Any]:
    """Documents may be keyed by a plain string or by an ObjectId"""
    candidates: List[Any] = [doc_id]
    try:
        candidates.append(ObjectId(doc_id))
    except (InvalidId, TypeError):
        pass
    return candidates


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    """Create the tenant lookup indexes; failures are logged, not fatal"""
    for collection, keys in TENANT_INDEXES.items():
        name = f"{collection}_tenant_lookup"
        try:
            await database[collection].create_index(keys, name=name, background=True)
        except Exception as e:
            logger.warning(f"Index {name} skipped: {e}")


class Database:
    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self, mongo_url: str, db_name: str):
        """Connect to MongoDB and make sure tenant indexes exist"""
        try:
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[db_name]
            await self.client.admin.command('ping')
            logger.info(f"Connected to MongoDB database: {db_name}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise
        await ensure_indexes(self.db)

    async def disconnect(self):
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("Disconnected from MongoDB")

    def get_db(self) -> AsyncIOMotorDatabase:
        if self.db is None:
            raise RuntimeError("Database not connected")
        return self.db

db = Database()

async def get_database() -> AsyncIOMotorDatabase:
    return db.get_db()
