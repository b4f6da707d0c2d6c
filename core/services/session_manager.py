# Gestor de sesiones: metadata de sesión e historial de conversación en Redis

import json
import logging
from typing import List, Optional

from config.settings import settings
from core.domain.errors import SessionNotFoundError
from core.domain.session import Message, Session
from core.ports.cache_port import CachePort

logger = logging.getLogger(__name__)

SESSION_KEY = "session:{}"
MESSAGES_KEY = "session:{}:messages"


# Gestiona sesiones de conversación sobre el cache compartido
class SessionManager:
    def __init__(self, cache: CachePort, ttl_seconds: int = None, max_history: int = None):
        self.cache = cache
        self.ttl = ttl_seconds or settings.session.ttl_seconds
        self.max_history = max_history or settings.session.max_history

    # Crea una sesión ligada a usuario y datasource
    def create_session(self, user_id: int, data_source_id: int, title: str = "") -> Session:
        session = Session(user_id=user_id, data_source_id=data_source_id, title=title[:80])
        self.cache.set(SESSION_KEY.format(session.id), json.dumps(session.to_dict()), self.ttl)
        logger.debug(f"Nueva sesión: {session.id} (usuario {user_id}, datasource {data_source_id})")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        raw = self.cache.get(SESSION_KEY.format(session_id))
        if not raw:
            return None
        return Session.from_dict(json.loads(raw))

    def require_session(self, session_id: str, user_id: int) -> Session:
        """Sesión existente y del mismo usuario; si no, SessionNotFoundError"""
        session = self.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)
        return session

    # Historial completo, del más antiguo al más reciente
    def get_history(self, session_id: str) -> List[Message]:
        history = []
        for raw in self.cache.list_range(MESSAGES_KEY.format(session_id)):
            try:
                history.append(Message.from_json(raw))
            except (ValueError, KeyError) as e:
                logger.warning(f"Mensaje corrupto en sesión {session_id}: {e}")
        return history

    # Agrega un mensaje; ventana deslizante de max_history
    def add_message(self, session_id: str, role: str, content: str):
        self.cache.list_append(
            MESSAGES_KEY.format(session_id),
            Message(role=role, content=content).to_json(),
            self.max_history,
            self.ttl,
        )

    # Agrega un intercambio completo (pregunta + respuesta)
    def add_exchange(self, session_id: str, user_query: str, assistant_response: str):
        self.add_message(session_id, "user", user_query)
        self.add_message(session_id, "assistant", assistant_response)

    def delete_session(self, session_id: str) -> bool:
        existed = self.session_exists(session_id)
        self.cache.delete(SESSION_KEY.format(session_id), MESSAGES_KEY.format(session_id))
        logger.debug(f"Sesión eliminada: {session_id}")
        return existed

    def session_exists(self, session_id: str) -> bool:
        return self.cache.exists(SESSION_KEY.format(session_id))


_session_manager = None


def get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        from adapters.outbound.cache import get_redis_client

        _session_manager = SessionManager(get_redis_client())
    return _session_manager
