import asyncio
import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from utils.errors import ProviderNotConfiguredError

LOGGER = logging.getLogger(__name__)


class SupabaseClientInitializer:
    """
    Lazily create the async Supabase client from the service-role credentials.

    - `SUPABASE_URL` and `SUPABASE_SERVICE_ROLE_KEY` come from settings.
    - Missing credentials do not fail startup; `client()` raises
      `ProviderNotConfiguredError` so the routes that need the database answer 503.
    - The client is built once per instance; concurrent first calls share it.
    """

    def __init__(self, url: Optional[str], service_role_key: Optional[str]) -> None:
        self.url = url
        self.service_role_key = service_role_key
        self._client: Optional[AsyncClient] = None
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_role_key)

    async def client(self) -> AsyncClient:
        if not self.configured:
            raise ProviderNotConfiguredError("Supabase")
        if self._client is not None:
            return self._client
        async with self._lock:
            if self._client is None:
                self._client = await acreate_client(self.url, self.service_role_key)
                LOGGER.info("Supabase client initialised for %s", self.url)
        return self._client
