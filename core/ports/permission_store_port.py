# Puerto del almacén de permisos (fuente de verdad)

from abc import ABC, abstractmethod
from typing import List, Optional, Set, Tuple

from core.domain.policy import QueryPolicy
from core.domain.query import DataSourceConfig


class PermissionStorePort(ABC):
    """Lectura de usuarios, roles, permisos de tabla, políticas y datasources"""

    @abstractmethod
    def get_table_permissions(self, role_id: int) -> Set[str]:
        """Permisos del rol como strings '{dataSourceId}:{tableName}:{ACTION}'"""
        pass

    @abstractmethod
    def get_policy(self, role_id: int) -> Optional[QueryPolicy]:
        pass

    @abstractmethod
    def get_user_role_id(self, user_id: int) -> Optional[int]:
        pass

    @abstractmethod
    def get_user_ids_by_role(self, role_id: int) -> List[int]:
        pass

    @abstractmethod
    def get_user_ids_by_data_source(self, data_source_id: int) -> List[int]:
        """Usuarios cuyo rol tiene algún permiso sobre el datasource"""
        pass

    @abstractmethod
    def get_active_users(self) -> List[Tuple[int, int]]:
        """Pares (user_id, role_id) de usuarios activos"""
        pass

    @abstractmethod
    def get_data_source(self, data_source_id: int) -> Optional[DataSourceConfig]:
        pass

    @abstractmethod
    def list_data_sources(self) -> List[DataSourceConfig]:
        pass
