"""
Provider directory lookups.

The provider catalog lives elsewhere; the queue only needs each provider's
average consultation time to price wait estimates.
"""

import logging
from typing import Dict, Optional

from pymongo.errors import PyMongoError

from ..database import Database

logger = logging.getLogger(__name__)


class ProviderDirectory:
    """Average consultation minutes per provider, held in memory."""

    def __init__(self, consult_minutes: Optional[Dict[str, float]] = None):
        self._consult_minutes: Dict[str, float] = dict(consult_minutes or {})

    def set_avg_consult_minutes(self, provider_id: str, minutes: float) -> None:
        self._consult_minutes[provider_id] = minutes

    async def get_avg_consult_minutes(self, provider_id: str) -> Optional[float]:
        return self._consult_minutes.get(provider_id)


class MongoProviderDirectory(ProviderDirectory):
    """Reads `avg_consult_minutes` from the `providers` collection."""

    async def get_avg_consult_minutes(self, provider_id: str) -> Optional[float]:
        try:
            providers = Database.get_collection("providers")
            provider = await providers.find_one(
                {"provider_id": provider_id},
                {"avg_consult_minutes": 1}
            )
        except (PyMongoError, RuntimeError) as e:
            logger.warning("Provider lookup failed for %s: %s", provider_id, e)
            provider = None

        if provider and provider.get("avg_consult_minutes"):
            return float(provider["avg_consult_minutes"])
        return await super().get_avg_consult_minutes(provider_id)
