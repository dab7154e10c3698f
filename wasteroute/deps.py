# wasteroute/deps.py
from functools import lru_cache

from fastapi import Depends

from wasteroute.core.config import settings
from wasteroute.services.notifications import Notifier, OutboxNotifier


@lru_cache(maxsize=1)
def get_repo():
    if settings.storage == "mongo":
        from motor.motor_asyncio import AsyncIOMotorClient
        from wasteroute.repos.mongo import MongoRepo

        client = AsyncIOMotorClient(settings.mongo_uri, uuidRepresentation="standard")
        return MongoRepo(client, settings.mongo_db, use_transactions=settings.mongo_transactions)

    from wasteroute.repos.inmemory import InMemoryRepo
    return InMemoryRepo()


def get_notifier(repo=Depends(get_repo)) -> Notifier:
    return OutboxNotifier(repo)
