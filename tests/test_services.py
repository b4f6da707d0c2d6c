# Tests unitarios de servicios: colector de schema, generador, sesiones, ejecutor e indexador
# Ejecutar con: pytest tests/test_services.py -v

import json
import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

from core.domain.errors import DataSourceNotFoundError, ExecutionError, SessionNotFoundError, UpstreamUnavailable


# =============================================================================
# TESTS DE SCHEMA COLLECTOR
# =============================================================================

@pytest.fixture
def registry(sample_tables):
    adapter = MagicMock()
    adapter.extract_metadata.side_effect = lambda tables, schema=None: [
        t for t in sample_tables if t.name in tables
    ]
    adapter.get_tables.return_value = ["customers", "orders", "products"]
    mock = MagicMock()
    mock.get.return_value = adapter
    return mock


@pytest.mark.unit
class TestSchemaCollector:
    """Cache de metadata por datasource y conjunto de tablas"""

    def test_permission_hash_is_order_independent(self):
        from core.services.schema import permission_hash
        assert permission_hash(["b", "a"]) == permission_hash(["a", "b"])
        # Valor fijo: la clave de cache se comparte con otros servicios
        assert permission_hash(["a", "b"]) == "fe2"

    def test_miss_then_hit(self, cache, store, registry):
        from core.services.schema import SchemaCollector
        collector = SchemaCollector(cache, registry)
        ds = store.get_data_source(1)

        first = collector.get_metadata(ds, ["orders", "customers"])
        second = collector.get_metadata(ds, ["customers", "orders"])

        assert [t.name for t in first] == ["customers", "orders"]
        assert second == first
        registry.get.return_value.extract_metadata.assert_called_once()

    def test_empty_tables_skip_database(self, cache, store, registry):
        from core.services.schema import SchemaCollector
        assert SchemaCollector(cache, registry).get_metadata(store.get_data_source(1), []) == []
        registry.get.assert_not_called()

    def test_corrupt_entry_is_reloaded(self, cache, store, registry):
        from core.services.schema import SchemaCollector, permission_hash
        cache.set(f"schema:1:{permission_hash(['customers'])}", "{not json")

        result = SchemaCollector(cache, registry).get_metadata(store.get_data_source(1), ["customers"])
        assert [t.name for t in result] == ["customers"]

    def test_evict_data_source(self, cache, store, registry):
        from core.services.schema import SchemaCollector
        collector = SchemaCollector(cache, registry)
        collector.get_metadata(store.get_data_source(1), ["customers"])
        cache.set("schema:2:abc", "[]")

        assert collector.evict_data_source(1) == 1
        assert cache.get("schema:2:abc") == "[]"

    def test_format_lists_columns(self, sample_tables):
        from core.domain.schema import format_schema
        text = format_schema(sample_tables[:1])
        assert "Tabla: customers (Clientes registrados)" in text
        assert "- id (integer) [PK] - (sin comentario)" in text
        assert "Clave primaria: [id]" in text


# =============================================================================
# TESTS DE SQL GENERATOR
# =============================================================================

@pytest.mark.unit
class TestCleanSQL:
    """Extracción de SQL desde la respuesta del LLM"""

    def test_plain_sql(self):
        from core.services.sql import clean_sql
        assert clean_sql("SELECT id\nFROM customers   LIMIT 5") == "SELECT id FROM customers LIMIT 5;"

    def test_fenced_block(self):
        from core.services.sql import clean_sql
        raw = "Aquí tienes:\n```sql\nSELECT id FROM orders LIMIT 5; -- fin\n```"
        assert clean_sql(raw) == "SELECT id FROM orders LIMIT 5;"

    def test_embedded_in_text(self):
        from core.services.sql import clean_sql
        raw = "La consulta sería SELECT name FROM customers LIMIT 3; espero que sirva"
        assert clean_sql(raw) == "SELECT name FROM customers LIMIT 3;"

    def test_strips_comments(self):
        from core.services.sql import clean_sql
        assert clean_sql("SELECT id -- clave\nFROM orders LIMIT 1") == "SELECT id FROM orders LIMIT 1;"

    def test_only_first_statement(self):
        from core.services.sql import clean_sql
        assert clean_sql("SELECT 1; DROP TABLE orders;") == "SELECT 1;"

    @pytest.mark.parametrize("sql", [
        "SELECT id FROM customers WHERE note = 'a;b' LIMIT 5;",
        "SELECT id FROM customers WHERE note = '--x' LIMIT 5;",
        "SELECT id FROM customers WHERE note = 'a  b' LIMIT 5;",
        "SELECT id FROM customers WHERE note = '/* x */' LIMIT 5;",
    ])
    def test_literals_are_untouched(self, sql):
        from core.services.sql import clean_sql
        assert clean_sql(sql) == sql

    def test_block_comment_removed(self):
        from core.services.sql import clean_sql
        sql = "SELECT id /* clave */ FROM orders WHERE note = 'x;y' LIMIT 1"
        assert clean_sql(sql) == "SELECT id FROM orders WHERE note = 'x;y' LIMIT 1;"

    def test_prose_with_quote_after_statement(self):
        from core.services.sql import clean_sql
        raw = "Prueba con SELECT id FROM customers LIMIT 3; it's fine"
        assert clean_sql(raw) == "SELECT id FROM customers LIMIT 3;"

    def test_explanation_kept(self):
        from core.services.sql import clean_sql
        assert clean_sql("[EXPLAIN] No existe esa tabla") == "[EXPLAIN] No existe esa tabla"
        assert clean_sql("No tengo datos para eso.") == "No tengo datos para eso."

    def test_empty(self):
        from core.services.sql import clean_sql
        assert clean_sql("   ") == ""


def context(dialect="postgresql"):
    from core.domain.query import GenerationContext
    return GenerationContext(dialect=dialect, data_source_id=1, system_prompt="sistema")


@pytest.mark.unit
class TestSQLGenerator:

    def test_generate_with_history(self, mock_llm):
        from core.domain.session import Message
        from core.services.sql import SQLGenerator
        history = [Message("user", "clientes"), Message("assistant", "SELECT id FROM customers LIMIT 10;")]

        generated = SQLGenerator(mock_llm).generate(context(), history, "y sus nombres")

        messages = mock_llm.invoke.call_args.args[0]
        assert [type(m).__name__ for m in messages] == ["SystemMessage", "HumanMessage", "AIMessage", "HumanMessage"]
        assert generated.sql == "SELECT id, name FROM customers LIMIT 100;"
        assert not generated.is_explanation

    def test_llm_failure_is_upstream_error(self, mock_llm):
        from core.services.sql import SQLGenerator
        mock_llm.invoke.side_effect = TimeoutError("read timeout")
        with pytest.raises(UpstreamUnavailable):
            SQLGenerator(mock_llm).generate(context(), [], "clientes")

    def test_correct_truncates_error(self, mock_llm):
        from core.services.sql import SQLGenerator
        SQLGenerator(mock_llm).correct(context(), [], "SELECT x FROM t;", "e" * 2000)
        prompt = mock_llm.invoke.call_args.args[0][-1].content
        assert "SELECT x FROM t;" in prompt
        assert "e" * 500 in prompt
        assert "e" * 501 not in prompt


@pytest.mark.unit
class TestPromptBuilder:

    def test_dialect_and_sections(self):
        from core.services.sql import PromptBuilder
        prompt = PromptBuilder().build("mssql", "Tabla: customers", "Genera SQL estándar.")
        assert "SQL Server" in prompt
        assert "Tabla: customers" in prompt
        assert "Genera SQL estándar." in prompt

    def test_unknown_dialect_falls_back(self):
        from core.services.sql import PromptBuilder
        builder = PromptBuilder(template="{dialect}|{few_shot}", few_shot={"postgresql": "EJEMPLOS_PG"})
        assert builder.build("oracle", "", "") == "oracle|EJEMPLOS_PG"


# =============================================================================
# TESTS DE EJECUTOR E INDEXADOR
# =============================================================================

@pytest.mark.unit
class TestQueryExecutor:

    def test_rows_as_json_values(self, store):
        from core.services.sql import QueryExecutor
        adapter = MagicMock()
        adapter.execute.return_value = {
            "columns": ["total", "day", "blob"],
            "data": [(Decimal("10.50"), date(2024, 1, 2), b"\x01\x02")],
        }
        registry = MagicMock()
        registry.get.return_value = adapter

        columns, rows = QueryExecutor(registry).execute(store.get_data_source(1), "SELECT 1;")

        assert columns == ["total", "day", "blob"]
        assert rows == [{"total": 10.5, "day": "2024-01-02", "blob": "0102"}]
        json.dumps(rows)

    def test_database_error(self, store):
        from core.services.sql import QueryExecutor
        adapter = MagicMock()
        adapter.execute.return_value = {"error": 'relation "x" does not exist'}
        registry = MagicMock()
        registry.get.return_value = adapter

        with pytest.raises(ExecutionError) as exc:
            QueryExecutor(registry).execute(store.get_data_source(1), "SELECT * FROM x LIMIT 1;")
        assert "does not exist" in exc.value.message


@pytest.mark.unit
class TestSchemaIndexer:

    def test_reindex_replaces_points(self, store, registry):
        from core.services.schema import SchemaIndexer
        index = MagicMock()
        index.upsert_tables.return_value = 3

        assert SchemaIndexer(store, registry, index).reindex(1) == 3
        index.delete_data_source.assert_called_once_with(1)
        upserted = index.upsert_tables.call_args.args[1]
        assert [t.name for t in upserted] == ["customers", "orders", "products"]

    def test_reindex_all_skips_failures(self, store, registry):
        from core.domain.query import DataSourceConfig
        from core.services.schema import SchemaIndexer
        store.data_sources[2] = DataSourceConfig(id=2, name="rrhh", db_type="sqlite", connection_string="x.db")
        index = MagicMock()
        index.upsert_tables.side_effect = [3, RuntimeError("qdrant caído")]

        assert SchemaIndexer(store, registry, index).reindex_all() == 3
        assert index.upsert_tables.call_count == 2

    def test_unknown_data_source(self, store, registry):
        from core.services.schema import SchemaIndexer
        with pytest.raises(DataSourceNotFoundError):
            SchemaIndexer(store, registry, MagicMock()).reindex(99)

    def test_point_id_is_deterministic_uuid3(self):
        import uuid
        from adapters.outbound.vector.qdrant_index import table_point_id
        point = table_point_id(1, "customers")
        assert point == table_point_id(1, "customers")
        assert point != table_point_id(2, "customers")
        assert uuid.UUID(point).version == 3


# =============================================================================
# TESTS DE SESIONES Y RESUMEN
# =============================================================================

@pytest.mark.unit
class TestSessionManager:

    def test_history_window(self, cache):
        from core.services.session_manager import SessionManager
        manager = SessionManager(cache, max_history=4)
        session = manager.create_session(7, 1, "ventas")

        for i in range(3):
            manager.add_exchange(session.id, f"pregunta {i}", f"SELECT {i};")

        history = manager.get_history(session.id)
        assert [m.content for m in history] == ["pregunta 1", "SELECT 1;", "pregunta 2", "SELECT 2;"]

    def test_require_session_checks_owner(self, cache):
        from core.services.session_manager import SessionManager
        manager = SessionManager(cache)
        session = manager.create_session(7, 1)

        assert manager.require_session(session.id, 7).data_source_id == 1
        with pytest.raises(SessionNotFoundError):
            manager.require_session(session.id, 8)
        with pytest.raises(SessionNotFoundError):
            manager.require_session("nope", 7)

    def test_delete_session(self, cache):
        from core.services.session_manager import SessionManager
        manager = SessionManager(cache)
        session = manager.create_session(7, 1)
        manager.add_message(session.id, "user", "hola")

        assert manager.delete_session(session.id) is True
        assert manager.get_history(session.id) == []
        assert manager.delete_session(session.id) is False


@pytest.mark.unit
class TestSummaryGenerator:

    def test_hides_sensitive_columns(self, mock_llm):
        from core.services.response import SummaryGenerator
        mock_llm.invoke.return_value = MagicMock(content=" Hay un usuario. ")

        summary = SummaryGenerator(mock_llm).generate(
            "usuarios", "SELECT * FROM users LIMIT 1;", [{"name": "Ana", "password_hash": "x1"}]
        )

        assert summary == "Hay un usuario."
        prompt = mock_llm.invoke.call_args.args[0][-1].content
        assert "Ana" in prompt
        assert "x1" not in prompt

    def test_failure_returns_none(self, mock_llm):
        from core.services.response import SummaryGenerator
        mock_llm.invoke.side_effect = RuntimeError("quota")
        assert SummaryGenerator(mock_llm).generate("q", "SELECT 1;", []) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
