"""Async Data Access Layer for the `chats` and `chat_messages` tables."""

from __future__ import annotations

from typing import Dict, List, Optional

from utils.supabase_init import SupabaseClientInitializer

HISTORY_ROWS = 20


class ChatMessageDAL:
    """Load and persist the stored conversation for a user's chat."""

    def __init__(self, supabase: SupabaseClientInitializer) -> None:
        self._supabase = supabase

    async def recent_history(self, user_id: str, chat_id: str, limit: int = HISTORY_ROWS) -> List[Dict[str, str]]:
        """Return the newest `limit` messages as role/content pairs, oldest first."""
        client = await self._supabase.client()
        response = (
            await client.table("chat_messages")
            .select("role, content, created_at")
            .eq("user_id", user_id)
            .eq("chat_id", chat_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        rows = list(reversed(response.data or []))
        return [
            {"role": row["role"], "content": row["content"]}
            for row in rows
            if row.get("role") in ("user", "assistant") and row.get("content")
        ]

    async def save_message(
        self,
        user_id: str,
        chat_id: str,
        role: str,
        content: str,
        image_url: Optional[str] = None,
    ) -> None:
        client = await self._supabase.client()
        row = {"user_id": user_id, "chat_id": chat_id, "role": role, "content": content}
        if image_url:
            row["image_url"] = image_url
        await client.table("chat_messages").insert(row).execute()

    async def touch_chat(self, user_id: str, chat_id: str, title: str) -> None:
        """Create the chat row on first message; later calls leave the title alone."""
        client = await self._supabase.client()
        await (
            client.table("chats")
            .upsert({"id": chat_id, "user_id": user_id, "title": title[:100]}, on_conflict="id", ignore_duplicates=True)
            .execute()
        )
