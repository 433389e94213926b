"""Asset lookup sources for the download path."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from memehub.core.metrics import BAAS_REQUESTS_TOTAL
from memehub.modules.media.fallback import Attempt
from memehub.modules.media.models import MediaAsset
from memehub.modules.media.sample_data import SAMPLE_MEMES

logger = logging.getLogger(__name__)


class AssetSource(ABC):
    """Somewhere a meme record can be looked up by id."""

    name: str = "source"

    @abstractmethod
    def lookup(self, asset_id: str) -> Attempt[MediaAsset]:
        """Return ``HIT`` with the asset, ``MISS``, or ``ERROR``. Never raises."""


class SupabaseAssetSource(AssetSource):
    """Reads meme rows from the Supabase ``memes`` table."""

    name = "supabase"

    def __init__(self, client_factory: Callable[[], Optional[Any]], table: str = "memes"):
        self._client_factory = client_factory
        self.table = table

    def lookup(self, asset_id: str) -> Attempt[MediaAsset]:
        try:
            client = self._client_factory()
            if client is None:
                raise RuntimeError("Supabase is not configured")
            response = (
                client.table(self.table)
                .select("*")
                .eq("id", asset_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            BAAS_REQUESTS_TOTAL.labels(service="database", operation="select", status="error").inc()
            logger.warning("Supabase lookup failed for %s: %s", asset_id, e)
            return Attempt.failed(self.name, e)

        BAAS_REQUESTS_TOTAL.labels(service="database", operation="select", status="ok").inc()
        rows = response.data or []
        if not rows:
            return Attempt.miss(self.name)

        logger.info("Meme %s found in Supabase", asset_id)
        return Attempt.hit(self.name, MediaAsset.from_record(rows[0]))


class SampleAssetSource(AssetSource):
    """Looks assets up in the bundled sample dataset."""

    name = "samples"

    def __init__(self, records: Iterable[dict] = SAMPLE_MEMES):
        self._records = {str(r["id"]): r for r in records}

    def lookup(self, asset_id: str) -> Attempt[MediaAsset]:
        record = self._records.get(asset_id)
        if record is None:
            return Attempt.miss(self.name)
        logger.info("Using sample meme data for %s", asset_id)
        return Attempt.hit(self.name, MediaAsset.from_record(record))
