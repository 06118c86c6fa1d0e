from streamrelay.schemas.init import init_beanie_odm
from streamrelay.shared.storage.mongo import get_mongo_client

STREAMRELAY_MONGO_LABEL = "streamrelay"


async def init_schema():
    mongo_client = get_mongo_client(STREAMRELAY_MONGO_LABEL)
    db = mongo_client.get_default_database("streamrelay")
    await init_beanie_odm(db)


if __name__ == "__main__":
    import asyncio

    asyncio.run(init_schema())
