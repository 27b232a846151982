from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import settings
from app.modules.alerts.documents import AlertDocument, AlertRuleDocument
from app.modules.vitals.models import VitalSignDocument

MONGO_CLIENT: AsyncIOMotorClient | None = None


async def init_db() -> AsyncIOMotorClient:
    """
    Create a single Motor client, initialize Beanie, and return the client.

    This should be called exactly once at app startup, and only when the
    Mongo store backend is selected.
    """
    global MONGO_CLIENT

    client = AsyncIOMotorClient(
        settings.MONGODB_URL,
        uuidRepresentation="standard",
        serverSelectionTimeoutMS=5000,
        tz_aware=True,
    )

    db: AsyncIOMotorDatabase = client[settings.MONGODB_DB_NAME]

    await init_beanie(
        database=db,
        document_models=[
            AlertRuleDocument,
            AlertDocument,
            VitalSignDocument,
        ],
    )

    MONGO_CLIENT = client
    return client


def close_db() -> None:
    global MONGO_CLIENT

    if MONGO_CLIENT is not None:
        MONGO_CLIENT.close()
        MONGO_CLIENT = None
