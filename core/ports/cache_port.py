# Puerto de Cache
# Define la interfaz que cualquier adaptador de cache debe implementar

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set


class CachePort(ABC):
    """Puerto para acceso a cache clave-valor compartido entre procesos"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Obtiene valor del cache"""
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Guarda valor en cache (ttl en segundos)"""
        pass

    @abstractmethod
    def delete(self, *keys: str) -> None:
        """Elimina claves. Borrar una clave inexistente no es error."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def set_members(self, key: str) -> Set[str]:
        """Miembros de un set; vacío si la clave no existe"""
        pass

    @abstractmethod
    def write_atomic(
        self,
        values: Dict[str, str],
        sets: Dict[str, Iterable[str]],
        ttl: int,
    ) -> None:
        """
        Escribe varios valores y sets en una sola transacción.
        Los sets se reemplazan completos. Todas las claves reciben el mismo TTL.
        """
        pass

    @abstractmethod
    def try_acquire(self, key: str, ttl: int) -> Optional[str]:
        """
        Intenta tomar un lock distribuido (set-if-absent con expiración).

        Returns:
            Token único del dueño si este llamador obtuvo el lock, None si no
        """
        pass

    @abstractmethod
    def release(self, key: str, token: str) -> bool:
        """
        Libera el lock solo si todavía guarda el token dado. Si expiró y otro
        lo tomó, no se toca.

        Returns:
            True si se borró el lock
        """
        pass

    @abstractmethod
    def list_append(self, key: str, value: str, max_len: int, ttl: int) -> None:
        """Agrega al final de una lista y la recorta a los últimos max_len elementos"""
        pass

    @abstractmethod
    def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        pass

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """Elimina todas las claves que coinciden con el patrón glob"""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Verifica conexión"""
        pass
