"""RAG-SQL con permisos: CLI y servidor."""

import sys
import json
import logging
import argparse


def main():
    parser = argparse.ArgumentParser(description="RAG-SQL - Natural Language to SQL con permisos")
    parser.add_argument("--query", "-q", help="Consulta en lenguaje natural")
    parser.add_argument("--user", "-u", type=int, help="Id del usuario que consulta")
    parser.add_argument("--datasource", "-d", type=int, help="Id del datasource")
    parser.add_argument("--session", help="Sesión existente para contexto conversacional")
    parser.add_argument("--warmup", action="store_true", help="Precarga permisos de usuarios activos")
    parser.add_argument("--reindex", type=int, metavar="DS_ID", help="Re-indexa las tablas de un datasource")
    parser.add_argument("--reindex-all", action="store_true", help="Re-indexa todos los datasources")
    parser.add_argument("--serve", action="store_true", help="Levanta la API")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    from utils.logging import setup_logging

    setup_logging()

    if args.serve:
        import uvicorn

        uvicorn.run("adapters.inbound.api:app", host="0.0.0.0", port=args.port)
        return

    from adapters.factory import DependencyContainer, create_pipeline
    from core.domain.errors import RAGSQLError

    container = DependencyContainer()

    # Modo warm-up
    if args.warmup:
        loaded = container.loader.warm_up()
        print(f"\nPermisos precargados: {loaded} usuarios")
        return

    # Modo reindex
    if args.reindex is not None or args.reindex_all:
        indexer = container.indexer()
        if indexer is None:
            print("Error: índice vectorial no configurado (QDRANT_URL)")
            sys.exit(1)
        if args.reindex_all:
            count = indexer.reindex_all()
            print(f"\nDatasources indexados: {count} tablas en total")
        else:
            count = indexer.reindex(args.reindex)
            print(f"\nDatasource {args.reindex} indexado: {count} tablas")
        return

    # Modo query
    if args.user is None:
        print("Error: --user es requerido")
        sys.exit(1)
    query = args.query or input("Consulta: ").strip()
    if not query:
        print("Error: Query requerida")
        sys.exit(1)

    try:
        pipeline = create_pipeline(container)
        result = pipeline.run(args.user, args.session, query, args.datasource)
    except RAGSQLError as e:
        logging.error(f"{e.code}: {e.message}")
        sys.exit(1)
    finally:
        container.registry.close_all()

    print(f"\n{'=' * 50}")
    print(f"{query}")
    print(f"{'=' * 50}")
    if result.explanation:
        print(result.explanation)
    else:
        print(f"SQL{' (corregido)' if result.corrected else ''}: {result.sql}")
        print(json.dumps(result.rows[:20], ensure_ascii=False, indent=2, default=str))
        print(f"{result.row_count} filas")
        if result.summary:
            print(f"\n{result.summary}")
    print(f"\nSesión: {result.session_id}")


if __name__ == "__main__":
    main()
