# Configuración central de pytest y fixtures compartidos

import pytest
import os
import sys
import uuid
import fnmatch
import threading
from concurrent.futures import Future
from typing import Dict, Iterable, List, Optional, Set
from unittest.mock import Mock, MagicMock, patch

# Asegurar que el directorio raíz esté en el path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.domain.policy import QueryPolicy
from core.domain.query import DataSourceConfig, PipelineResult
from core.domain.schema import ColumnMetadata, TableMetadata
from core.ports.cache_port import CachePort
from core.ports.permission_store_port import PermissionStorePort


# MARKERS PERSONALIZADOS

def pytest_configure(config):
    """Registrar markers personalizados"""
    config.addinivalue_line(
        "markers", "unit: Tests unitarios rápidos (sin servicios externos)"
    )
    config.addinivalue_line(
        "markers", "integration: Tests de integración (requieren Redis/DB)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests lentos (LLM real, etc.)"
    )


# FAKES EN MEMORIA

class InMemoryCache(CachePort):
    """Cache en memoria con la misma semántica que RedisCache (sin expiración real)"""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.lists: Dict[str, List[str]] = {}
        self.ttls: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            self.values[key] = value
            if ttl:
                self.ttls[key] = ttl

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self.values.pop(key, None)
                self.sets.pop(key, None)
                self.lists.pop(key, None)
                self.ttls.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self.values or key in self.sets or key in self.lists

    def set_members(self, key: str) -> Set[str]:
        return set(self.sets.get(key, set()))

    def write_atomic(self, values: Dict[str, str], sets: Dict[str, Iterable[str]], ttl: int) -> None:
        with self._lock:
            for key, members in sets.items():
                members = set(members)
                self.sets.pop(key, None)
                if members:
                    self.sets[key] = members
                    self.ttls[key] = ttl
            for key, value in values.items():
                self.values[key] = value
                self.ttls[key] = ttl

    def try_acquire(self, key: str, ttl: int) -> Optional[str]:
        with self._lock:
            if key in self.values:
                return None
            token = uuid.uuid4().hex
            self.values[key] = token
            self.ttls[key] = ttl
            return token

    def release(self, key: str, token: str) -> bool:
        with self._lock:
            if self.values.get(key) != token:
                return False
            del self.values[key]
            self.ttls.pop(key, None)
            return True

    def list_append(self, key: str, value: str, max_len: int, ttl: int) -> None:
        with self._lock:
            items = self.lists.setdefault(key, [])
            items.append(value)
            self.lists[key] = items[-max_len:]
            self.ttls[key] = ttl

    def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start : end + 1]

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [
                k for k in list(self.values) + list(self.sets) + list(self.lists)
                if fnmatch.fnmatchcase(k, pattern)
            ]
        self.delete(*keys)
        return len(keys)

    def is_connected(self) -> bool:
        return True


class FakePermissionStore(PermissionStorePort):
    """Store en memoria que cuenta las lecturas de permisos"""

    def __init__(self):
        self.permissions: Dict[int, Set[str]] = {}
        self.policies: Dict[int, QueryPolicy] = {}
        self.users: Dict[int, int] = {}
        self.data_sources: Dict[int, DataSourceConfig] = {}
        self.permission_reads = 0
        self._lock = threading.Lock()

    def get_table_permissions(self, role_id: int) -> Set[str]:
        with self._lock:
            self.permission_reads += 1
        return set(self.permissions.get(role_id, set()))

    def get_policy(self, role_id: int) -> Optional[QueryPolicy]:
        return self.policies.get(role_id)

    def get_user_role_id(self, user_id: int) -> Optional[int]:
        return self.users.get(user_id)

    def get_user_ids_by_role(self, role_id: int) -> List[int]:
        return [u for u, r in self.users.items() if r == role_id]

    def get_user_ids_by_data_source(self, data_source_id: int) -> List[int]:
        prefix = f"{data_source_id}:"
        roles = {r for r, perms in self.permissions.items() if any(p.startswith(prefix) for p in perms)}
        return [u for u, r in self.users.items() if r in roles]

    def get_active_users(self):
        return sorted(self.users.items())

    def get_data_source(self, data_source_id: int) -> Optional[DataSourceConfig]:
        return self.data_sources.get(data_source_id)

    def list_data_sources(self) -> List[DataSourceConfig]:
        return list(self.data_sources.values())


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def store():
    """Usuario 7 con rol 3: SELECT sobre customers y orders del datasource 1"""
    s = FakePermissionStore()
    s.users[7] = 3
    s.permissions[3] = {"1:customers:SELECT", "1:orders:SELECT"}
    s.policies[3] = QueryPolicy(role_id=3, max_limit=100, allow_join=True,
                                allow_subquery=True, allow_aggregation=True)
    s.data_sources[1] = DataSourceConfig(
        id=1, name="ventas", db_type="postgresql",
        connection_string="postgresql://reader:secret@db:5432/ventas",
    )
    return s


@pytest.fixture(autouse=True)
def reset_metrics():
    """Las métricas son un singleton de proceso"""
    from utils.metrics import get_metrics
    get_metrics().reset()
    yield


# FIXTURES DE MOCK PARA TESTS UNITARIOS

@pytest.fixture
def mock_llm():
    """Mock del LLM para evitar llamadas reales (costosas y lentas)"""
    mock = MagicMock()
    mock.invoke.return_value = MagicMock(content="SELECT id, name FROM customers LIMIT 10;")
    mock.stream.return_value = iter(["Hay ", "10 clientes."])
    return mock


@pytest.fixture
def audit():
    mock = MagicMock()
    mock.log_query = Mock()
    mock.log_security_event = Mock()
    mock.log_invalidation = Mock()
    return mock


@pytest.fixture(scope="session")
def sample_tables():
    """Metadata de ejemplo para tests"""
    return [
        TableMetadata(
            name="customers",
            comment="Clientes registrados",
            columns=[
                ColumnMetadata("id", "integer", primary_key=True),
                ColumnMetadata("name", "varchar", "Nombre del cliente"),
                ColumnMetadata("email", "varchar", "Correo electrónico"),
            ],
        ),
        TableMetadata(
            name="orders",
            comment="Pedidos de venta",
            columns=[
                ColumnMetadata("id", "integer", primary_key=True),
                ColumnMetadata("customer_id", "integer", "Cliente que compra", indexed=True),
                ColumnMetadata("total", "numeric", "Monto total del pedido"),
            ],
        ),
        TableMetadata(
            name="products",
            comment="Catálogo de productos",
            columns=[
                ColumnMetadata("id", "integer", primary_key=True),
                ColumnMetadata("sku", "varchar", "Código de producto"),
                ColumnMetadata("price", "numeric", "Precio unitario"),
            ],
        ),
    ]


class InlinePool:
    """Worker pool que ejecuta en el mismo hilo y retorna un Future resuelto"""

    in_flight = 0

    def submit(self, fn, *args, **kwargs) -> Future:
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def mock_deps(store):
    """Mock completo de AppDependencies para tests de API"""
    mock = MagicMock()
    mock.pipeline.run.return_value = PipelineResult(
        session_id="test-session-123",
        sql="SELECT id, name FROM customers LIMIT 10;",
        columns=["id", "name"],
        rows=[{"id": 1, "name": "Ana"}],
        summary="Hay un cliente.",
    )
    mock.worker_pool = InlinePool()
    mock.container.store = store
    mock.container.index = None
    mock.container.cache.is_connected.return_value = True
    mock.session_manager.create_session.return_value = MagicMock(id="test-session-123", data_source_id=1)
    mock.session_manager.delete_session.return_value = True
    mock.event_bus.publish.return_value = []
    return mock


# FIXTURES DE INTEGRACIÓN (scope="session" para reusar conexiones)

@pytest.fixture(scope="session")
def redis_cache():
    """RedisCache real - reutilizado en toda la sesión de tests"""
    try:
        from adapters.outbound.cache import RedisCache
        client = RedisCache()
        if client.is_connected():
            yield client
        else:
            pytest.skip("Redis no disponible")
    except Exception as e:
        pytest.skip(f"Redis no disponible: {e}")


# FIXTURES PARA TESTS DE API

@pytest.fixture
def api_client(mock_deps):
    """Cliente de API con dependencias mockeadas"""
    from fastapi.testclient import TestClient

    with patch("adapters.inbound.dependencies.AppDependencies") as MockDeps:
        MockDeps.get_instance.return_value = mock_deps

        from adapters.inbound.api import app
        yield TestClient(app, headers={"X-User-Id": "7"})
