from adapters.outbound.store.permission_store import PostgresPermissionStore, build_connection_string

__all__ = ["PostgresPermissionStore", "build_connection_string"]
