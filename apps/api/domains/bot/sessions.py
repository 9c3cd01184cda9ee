"""Per-chat bot sessions stored in ``bot_sessions``."""

from dataclasses import dataclass
from typing import Any

from supabase import Client

from apps.api.domains.bot.states import Idle, state_from_row, state_to_row

TABLE = "bot_sessions"


@dataclass
class BotSession:
    id: str
    chat_id: Any
    user_id: Any
    state: Any


class SessionStore:
    def __init__(self, client: Client):
        self.client = client

    def load(self, chat_id, user_id) -> BotSession:
        """The session for (chat, user), created idle on first contact."""
        rows = (
            self.client.table(TABLE)
            .select("*")
            .eq("chat_id", chat_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
            .data
        )
        if rows:
            row = rows[0]
        else:
            row = (
                self.client.table(TABLE)
                .insert({"chat_id": chat_id, "user_id": user_id, **state_to_row(Idle())})
                .execute()
                .data[0]
            )
        return BotSession(
            id=row["id"],
            chat_id=chat_id,
            user_id=user_id,
            state=state_from_row(row.get("state"), row.get("context")),
        )

    def save(self, session: BotSession, state) -> None:
        self.client.table(TABLE).update(state_to_row(state)).eq("id", session.id).execute()
        session.state = state

    def reset(self, session: BotSession) -> None:
        if not isinstance(session.state, Idle):
            self.save(session, Idle())
