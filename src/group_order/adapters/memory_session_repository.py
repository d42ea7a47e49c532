"""In-process session repository."""

from dataclasses import dataclass, field

from group_order.domain.sessions import Session
from group_order.services.store import SessionRepository


@dataclass
class InMemorySessionRepository(SessionRepository):
    """Keeps sessions in a dict; suitable for a single-process deployment."""

    sessions: dict[str, Session] = field(default_factory=dict)

    def get_session(self, session_id: str) -> Session | None:
        return self.sessions.get(session_id)

    def save_session(self, session: Session) -> None:
        self.sessions[session.id] = session

    def list_active_sessions(self, limit: int) -> list[Session]:
        active = [session for session in self.sessions.values() if session.is_active]
        active.sort(key=lambda session: session.created_at, reverse=True)
        return active[:limit]

    def list_sessions_for_user(self, user_id: str, limit: int) -> list[Session]:
        mine = [
            session for session in self.sessions.values() if session.involves(user_id)
        ]
        mine.sort(key=lambda session: session.created_at, reverse=True)
        return mine[:limit]
