#!/usr/bin/env python3
# Test de carga contra /query. Mide latencias, correcciones y rechazos del pool (503).
# Ejecutar con: python tests/load_test.py  (requiere la API levantada)
import asyncio
import aiohttp
import time
import json
import os
import random
from datetime import datetime
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional

# Configuración - Lee de variable de entorno o usa default
API_URL = os.getenv("RAG_SQL_API_URL", "http://localhost:8000")
CONCURRENT_USERS = int(os.getenv("LOAD_TEST_USERS", "20"))
QUERIES_PER_USER = int(os.getenv("LOAD_TEST_QUERIES", "3"))
DATA_SOURCE_ID = int(os.getenv("LOAD_TEST_DATASOURCE", "1"))
# Usuarios reales del store de permisos, separados por coma
USER_IDS = [int(u) for u in os.getenv("LOAD_TEST_USER_IDS", "1").split(",") if u.strip()]
REPORT_DIR = Path(__file__).parent / "reports"

SAMPLE_QUESTIONS = [
    "cuantos clientes hay registrados",
    "lista los ultimos 10 pedidos",
    "cual es el total vendido por mes",
    "que productos tienen stock bajo",
    "clientes con mas pedidos",
    "pedidos pendientes de envio",
    "promedio de ticket por cliente",
]


@dataclass
class QueryResult:
    user_id: int
    session_id: str
    question: str
    status: int
    time_seconds: float
    success: bool
    corrected: bool = False
    row_count: int = 0
    error_code: str = ""


class LoadTester:
    def __init__(self):
        self.results: List[QueryResult] = []
        self.start_time = None
        self.end_time = None

    async def make_query(
        self,
        session: aiohttp.ClientSession,
        user_id: int,
        question: str,
        session_id: Optional[str] = None,
    ) -> QueryResult:
        """Hace una consulta a la API."""
        payload = {"question": question}
        if session_id:
            payload["session_id"] = session_id
        else:
            payload["data_source_id"] = DATA_SOURCE_ID

        start = time.time()
        try:
            async with session.post(
                f"{API_URL}/query",
                json=payload,
                headers={"X-User-Id": str(user_id)},
                timeout=aiohttp.ClientTimeout(total=120),
            ) as resp:
                elapsed = time.time() - start
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            return QueryResult(
                user_id=user_id,
                session_id=session_id or "",
                question=question,
                status=0,
                time_seconds=time.time() - start,
                success=False,
                error_code=type(e).__name__,
            )

        if resp.status == 200 and body.get("success"):
            data = body.get("data") or {}
            return QueryResult(
                user_id=user_id,
                session_id=data.get("session_id", ""),
                question=question,
                status=resp.status,
                time_seconds=elapsed,
                success=True,
                corrected=data.get("corrected", False),
                row_count=data.get("row_count", 0),
            )

        error = (body or {}).get("error") or {}
        return QueryResult(
            user_id=user_id,
            session_id=session_id or "",
            question=question,
            status=resp.status,
            time_seconds=elapsed,
            success=False,
            error_code=error.get("code", f"HTTP_{resp.status}"),
        )

    async def simulate_user(self, session: aiohttp.ClientSession, worker: int):
        """Simula un usuario haciendo varias consultas en la misma sesión."""
        user_id = USER_IDS[worker % len(USER_IDS)]
        session_id = None

        for _ in range(QUERIES_PER_USER):
            result = await self.make_query(session, user_id, random.choice(SAMPLE_QUESTIONS), session_id)
            if result.session_id:
                session_id = result.session_id
            self.results.append(result)

            # Pequeña pausa entre consultas del mismo usuario
            await asyncio.sleep(random.uniform(0.2, 1.0))

    async def run_load_test(self):
        """Ejecuta el test de carga."""
        print("\nIniciando test de carga...")
        print(f"   Usuarios concurrentes: {CONCURRENT_USERS}")
        print(f"   Consultas por usuario: {QUERIES_PER_USER}")
        print(f"   Datasource: {DATA_SOURCE_ID}\n")

        self.start_time = time.time()

        async with aiohttp.ClientSession() as session:
            try:
                async with session.get(f"{API_URL}/health") as resp:
                    if resp.status != 200:
                        print("[ERROR] API no disponible")
                        return
                    print("[OK] API disponible\n")
            except aiohttp.ClientError as e:
                print(f"[ERROR] No se puede conectar a la API: {e}")
                return

            await asyncio.gather(*[self.simulate_user(session, i) for i in range(CONCURRENT_USERS)])

        self.end_time = time.time()
        self.generate_report()

    def generate_report(self):
        """Genera el reporte de resultados."""
        REPORT_DIR.mkdir(parents=True, exist_ok=True)

        total_time = self.end_time - self.start_time
        successful = [r for r in self.results if r.success]
        failed = [r for r in self.results if not r.success]
        rejected = [r for r in failed if r.status == 503]
        corrected = [r for r in successful if r.corrected]

        times = sorted(r.time_seconds for r in successful)
        avg_time = sum(times) / len(times) if times else 0
        p50 = times[len(times) // 2] if times else 0
        p95 = times[int(len(times) * 0.95)] if times else 0
        p99 = times[int(len(times) * 0.99)] if times else 0

        error_codes = {}
        for r in failed:
            error_codes[r.error_code] = error_codes.get(r.error_code, 0) + 1

        report = {
            "test_info": {
                "timestamp": datetime.now().isoformat(),
                "concurrent_users": CONCURRENT_USERS,
                "queries_per_user": QUERIES_PER_USER,
                "total_queries": len(self.results),
                "total_time_seconds": round(total_time, 2),
            },
            "results": {
                "successful": len(successful),
                "failed": len(failed),
                "pool_rejections": len(rejected),
                "corrected": len(corrected),
                "success_rate": f"{len(successful) / max(len(self.results), 1) * 100:.1f}%",
            },
            "performance": {
                "avg_response_time": round(avg_time, 2),
                "p50_response_time": round(p50, 2),
                "p95_response_time": round(p95, 2),
                "p99_response_time": round(p99, 2),
                "throughput_qps": round(len(successful) / total_time, 2) if total_time else 0,
            },
            "errors": error_codes,
        }

        report_file = REPORT_DIR / f"load_test_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with open(report_file, "w") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)

        print("\n" + "=" * 60)
        print("REPORTE DE TEST DE CARGA")
        print("=" * 60)
        print(f"\nTiempo total: {total_time:.1f}s")
        print(f"Total consultas: {len(self.results)}")
        print(f"Exitosas: {len(successful)} ({report['results']['success_rate']})")
        print(f"Fallidas: {len(failed)} (rechazadas por pool: {len(rejected)})")
        print(f"Corregidas: {len(corrected)}")
        print("\nRendimiento:")
        print(f"   Promedio: {avg_time:.2f}s")
        print(f"   P50: {p50:.2f}s")
        print(f"   P95: {p95:.2f}s")
        print(f"   P99: {p99:.2f}s")
        if error_codes:
            print(f"\nErrores: {error_codes}")
        print(f"\nReporte guardado: {report_file}")
        print("=" * 60)


if __name__ == "__main__":
    tester = LoadTester()
    asyncio.run(tester.run_load_test())
