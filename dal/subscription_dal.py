"""Async Data Access Layer for the `user_subscriptions` table."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from models.billing_models import SubscriptionRecord
from utils.supabase_init import SupabaseClientInitializer

TABLE = "user_subscriptions"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SubscriptionDAL:
    """Read and write subscription rows keyed by user id or Stripe subscription id."""

    def __init__(self, supabase: SupabaseClientInitializer) -> None:
        self._supabase = supabase

    async def upsert(self, record: SubscriptionRecord) -> None:
        """Insert or replace the row for `record.user_id`."""
        client = await self._supabase.client()
        row = record.to_row()
        row["updated_at"] = _now_iso()
        await client.table(TABLE).upsert(row, on_conflict="user_id").execute()

    async def update_by_user(self, user_id: str, changes: Dict[str, Any]) -> None:
        client = await self._supabase.client()
        await client.table(TABLE).update({**changes, "updated_at": _now_iso()}).eq("user_id", user_id).execute()

    async def update_by_subscription(self, subscription_id: str, changes: Dict[str, Any]) -> None:
        client = await self._supabase.client()
        await (
            client.table(TABLE)
            .update({**changes, "updated_at": _now_iso()})
            .eq("stripe_subscription_id", subscription_id)
            .execute()
        )

    async def get_for_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Return the newest subscription row for `user_id`, or None."""
        client = await self._supabase.client()
        response = (
            await client.table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return SubscriptionRecord.from_row(rows[0]) if rows else None
