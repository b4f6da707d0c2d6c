# Cargador de permisos: cache-aside con lock distribuido contra estampidas

import random
import time
import logging
from typing import Iterable, List, Optional, Set

from config.settings import settings
from core.domain.errors import CacheError, UserNotFoundError
from core.domain.policy import QueryPolicy
from core.ports.cache_port import CachePort
from core.ports.permission_store_port import PermissionStorePort
from utils.metrics import get_metrics, timed

logger = logging.getLogger(__name__)

# Formatos de clave compartidos con cualquier otro proceso que lea el cache
PERM_SET_KEY = "user:perm:set:{}"
PERM_MARK_KEY = "user:perm:mark:{}"
POLICY_KEY = "user:policy:{}"
ROLE_KEY = "user:role_id:{}"
LOCK_KEY = "lock:perm:load:{}"

NO_POLICY = "NO_POLICY"


def permission_string(data_source_id, table: str, action: str = "SELECT") -> str:
    return f"{data_source_id}:{table}:{action}"


def allowed_tables(
    permissions: Iterable[str], data_source_id, action: str = "SELECT"
) -> List[str]:
    """Tablas (en minúsculas, sin duplicados) con la acción dada sobre el datasource"""
    prefix = f"{data_source_id}:"
    tables = []
    for perm in permissions:
        if not perm.startswith(prefix):
            continue
        parts = perm.split(":", 2)
        if len(parts) != 3 or parts[2].upper() != action:
            continue
        name = parts[1].lower()
        if name not in tables:
            tables.append(name)
    return tables


class PermissionLoader:
    """
    Snapshot de permisos por usuario, leído del cache y cargado del store
    bajo un lock distribuido cuando falta.

    Ante N requests concurrentes con cache frío, solo el que toma el lock
    consulta el store; el resto espera una vez y relee el cache.
    """

    def __init__(
        self,
        cache: CachePort,
        store: PermissionStorePort,
        ttl_minutes: int = None,
        jitter_minutes: int = None,
        lock_ttl_seconds: int = None,
        lock_wait_ms: int = None,
    ):
        self.cache = cache
        self.store = store
        cfg = settings.cache
        self.ttl_minutes = ttl_minutes if ttl_minutes is not None else cfg.perm_ttl_minutes
        self.jitter_minutes = (
            jitter_minutes if jitter_minutes is not None else cfg.perm_ttl_jitter_minutes
        )
        self.lock_ttl = lock_ttl_seconds if lock_ttl_seconds is not None else cfg.lock_ttl_seconds
        self.lock_wait = (lock_wait_ms if lock_wait_ms is not None else cfg.lock_wait_ms) / 1000

    def _ttl(self) -> int:
        jitter = random.randint(0, self.jitter_minutes * 60 - 1) if self.jitter_minutes else 0
        return self.ttl_minutes * 60 + jitter

    def _read_cached(self, user_id) -> Optional[Set[str]]:
        if not self.cache.exists(PERM_MARK_KEY.format(user_id)):
            return None
        return self.cache.set_members(PERM_SET_KEY.format(user_id))

    def load_permissions(self, user_id, role_id) -> Set[str]:
        """Permisos del usuario. Nunca retorna None; vacío si no se pudo cargar."""
        cached = self._read_cached(user_id)
        if cached is not None:
            get_metrics().record_perm_cache("hit")
            return cached

        get_metrics().record_perm_cache("miss")
        lock_key = LOCK_KEY.format(user_id)
        try:
            token = self.cache.try_acquire(lock_key, self.lock_ttl)
        except CacheError as e:
            logger.warning(f"Lock no disponible ({e.message}), cargando sin cache")
            return self.store.get_table_permissions(role_id)

        if token:
            try:
                # Otro proceso pudo cargar entre la lectura y el lock
                cached = self._read_cached(user_id)
                if cached is not None:
                    return cached
                return self._load_from_store(user_id, role_id)
            finally:
                if not self.cache.release(lock_key, token):
                    logger.warning(f"Lock {lock_key} expiró antes de liberarse")

        get_metrics().record_perm_cache("wait")
        time.sleep(self.lock_wait)
        cached = self._read_cached(user_id)
        if cached is None:
            logger.warning(f"Permisos de usuario {user_id} aún no cargados tras esperar el lock")
            return set()
        return cached

    def _load_from_store(self, user_id, role_id) -> Set[str]:
        permissions = set(self.store.get_table_permissions(role_id))
        policy = self.store.get_policy(role_id)

        self.cache.write_atomic(
            values={
                PERM_MARK_KEY.format(user_id): "1",
                POLICY_KEY.format(user_id): policy.to_json() if policy else NO_POLICY,
            },
            sets={PERM_SET_KEY.format(user_id): permissions},
            ttl=self._ttl(),
        )
        logger.info(f"Permisos cargados: usuario {user_id}, rol {role_id}, {len(permissions)} permisos")
        return permissions

    def load_policy(self, user_id, role_id) -> Optional[QueryPolicy]:
        """Política del rol del usuario, o None si el rol no tiene política"""
        key = POLICY_KEY.format(user_id)
        raw = self.cache.get(key)
        if raw == NO_POLICY:
            return None
        if raw:
            try:
                return QueryPolicy.from_json(raw)
            except ValueError as e:
                logger.warning(f"Política corrupta en cache para usuario {user_id}: {e}")

        policy = self.store.get_policy(role_id)
        self.cache.set(key, policy.to_json() if policy else NO_POLICY, self._ttl())
        return policy

    def resolve_role_id(self, user_id) -> int:
        key = ROLE_KEY.format(user_id)
        raw = self.cache.get(key)
        if raw:
            return int(raw)

        role_id = self.store.get_user_role_id(user_id)
        if role_id is None:
            raise UserNotFoundError(user_id)
        self.cache.set(key, str(role_id), settings.cache.role_ttl_hours * 3600)
        return role_id

    def evict(self, user_id, include_role: bool = False) -> None:
        """Invalida el snapshot del usuario. Idempotente."""
        keys = [
            PERM_SET_KEY.format(user_id),
            PERM_MARK_KEY.format(user_id),
            POLICY_KEY.format(user_id),
        ]
        if include_role:
            keys.append(ROLE_KEY.format(user_id))
        self.cache.delete(*keys)
        logger.debug(f"Cache de permisos invalidado: usuario {user_id}")

    @timed("warm_up")
    def warm_up(self, batch_size: int = None, pause_ms: int = None) -> int:
        """Precarga permisos de usuarios activos en lotes. Retorna cuántos se cargaron."""
        batch_size = batch_size or settings.cache.warmup_batch_size
        pause = (pause_ms if pause_ms is not None else settings.cache.warmup_pause_ms) / 1000

        users = self.store.get_active_users()
        logger.info(f"Warm-up de permisos: {len(users)} usuarios activos")

        loaded = 0
        for start in range(0, len(users), batch_size):
            for user_id, role_id in users[start : start + batch_size]:
                try:
                    self.load_permissions(user_id, role_id)
                    loaded += 1
                except Exception as e:
                    logger.warning(f"Warm-up falló para usuario {user_id}: {e}")
            if start + batch_size < len(users):
                time.sleep(pause)

        logger.info(f"Warm-up completado: {loaded}/{len(users)}")
        return loaded
