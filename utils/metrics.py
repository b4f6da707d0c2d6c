# Métricas y observabilidad del pipeline NL→SQL

import time
import logging
from typing import Dict, Callable
from functools import wraps
from dataclasses import dataclass, field
from collections import defaultdict
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class MetricCounter:
    """Contador simple para métricas"""

    value: int = 0
    _lock: Lock = field(default_factory=Lock)

    def inc(self, amount: int = 1):
        with self._lock:
            self.value += amount

    def get(self) -> int:
        return self.value


@dataclass
class MetricHistogram:
    """Histograma para latencias, conserva las últimas 1000 observaciones"""

    values: list = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock)

    def observe(self, value: float):
        with self._lock:
            self.values.append(value)
            if len(self.values) > 1000:
                self.values = self.values[-1000:]

    def get_stats(self) -> Dict:
        with self._lock:
            sorted_vals = sorted(self.values)
        if not sorted_vals:
            return {"count": 0, "avg": 0, "min": 0, "max": 0, "p50": 0, "p95": 0}

        count = len(sorted_vals)
        return {
            "count": count,
            "avg": sum(sorted_vals) / count,
            "min": sorted_vals[0],
            "max": sorted_vals[-1],
            "p50": sorted_vals[int(count * 0.5)],
            "p95": sorted_vals[int(count * 0.95)] if count > 20 else sorted_vals[-1],
        }


class MetricsCollector:
    """
    Colector de métricas en memoria.
    Expone dict para /health y texto Prometheus para /metrics.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._setup()
        self._initialized = True

    def _setup(self):
        # Contadores
        self.requests_total = defaultdict(MetricCounter)  # por endpoint
        self.errors_total = defaultdict(MetricCounter)  # por endpoint
        self.queries_total = defaultdict(MetricCounter)  # por estado final
        self.security_blocks = defaultdict(MetricCounter)  # por regla
        self.linker_hits = defaultdict(MetricCounter)  # por estrategia
        self.linker_fallbacks = defaultdict(MetricCounter)  # estrategia:motivo
        self.corrections = defaultdict(MetricCounter)  # success/failed
        self.llm_calls = defaultdict(MetricCounter)  # por modelo
        self.perm_cache = defaultdict(MetricCounter)  # hit/miss/wait
        self.pool_rejections = MetricCounter()
        self.events_total = defaultdict(MetricCounter)  # por tipo de evento

        # Histogramas
        self.request_duration = defaultdict(MetricHistogram)
        self.stage_duration = defaultdict(MetricHistogram)
        self.llm_duration = MetricHistogram()
        self.db_query_duration = MetricHistogram()
        self.pipeline_duration = MetricHistogram()

        # Gauges
        self.pool_in_flight = 0

    def reset(self):
        """Reinicia todas las métricas (tests)"""
        self._setup()

    def record_request(self, endpoint: str, duration_ms: float, success: bool):
        self.requests_total[endpoint].inc()
        self.request_duration[endpoint].observe(duration_ms)
        if not success:
            self.errors_total[endpoint].inc()

    def record_query(self, duration_ms: float, status: str):
        """Registra una query terminada (ok, error, explanation)"""
        self.queries_total[status].inc()
        self.pipeline_duration.observe(duration_ms)

    def record_stage(self, stage: str, duration_ms: float):
        self.stage_duration[stage].observe(duration_ms)

    def record_llm_call(self, model: str, duration_ms: float):
        self.llm_calls[model].inc()
        self.llm_duration.observe(duration_ms)

    def record_db_query(self, duration_ms: float):
        self.db_query_duration.observe(duration_ms)

    def record_security_block(self, rule: str):
        self.security_blocks[rule].inc()

    def record_linker_hit(self, strategy: str):
        self.linker_hits[strategy].inc()

    def record_linker_fallback(self, strategy: str, reason: str):
        self.linker_fallbacks[f"{strategy}:{reason}"].inc()

    def record_correction(self, success: bool):
        self.corrections["success" if success else "failed"].inc()

    def record_perm_cache(self, outcome: str):
        self.perm_cache[outcome].inc()

    def record_pool_rejection(self):
        self.pool_rejections.inc()

    def record_event(self, event_type: str):
        self.events_total[event_type].inc()

    def set_pool_in_flight(self, count: int):
        self.pool_in_flight = count

    def get_metrics(self) -> Dict:
        """Retorna todas las métricas en formato dict"""

        def counters(group):
            return {k: v.get() for k, v in group.items()}

        return {
            "counters": {
                "requests_total": counters(self.requests_total),
                "errors_total": counters(self.errors_total),
                "queries_total": counters(self.queries_total),
                "security_blocks": counters(self.security_blocks),
                "linker_hits": counters(self.linker_hits),
                "linker_fallbacks": counters(self.linker_fallbacks),
                "corrections": counters(self.corrections),
                "llm_calls": counters(self.llm_calls),
                "perm_cache": counters(self.perm_cache),
                "pool_rejections": self.pool_rejections.get(),
                "events_total": counters(self.events_total),
            },
            "histograms": {
                "request_duration_ms": {
                    k: v.get_stats() for k, v in self.request_duration.items()
                },
                "stage_duration_ms": {
                    k: v.get_stats() for k, v in self.stage_duration.items()
                },
                "llm_duration_ms": self.llm_duration.get_stats(),
                "db_query_duration_ms": self.db_query_duration.get_stats(),
                "pipeline_duration_ms": self.pipeline_duration.get_stats(),
            },
            "gauges": {
                "pool_in_flight": self.pool_in_flight,
            },
        }

    def get_prometheus_format(self) -> str:
        """Retorna métricas en formato Prometheus"""
        lines = []
        metrics = self.get_metrics()
        c = metrics["counters"]

        for endpoint, count in c["requests_total"].items():
            lines.append(f'ragsql_requests_total{{endpoint="{endpoint}"}} {count}')
        for status, count in c["queries_total"].items():
            lines.append(f'ragsql_queries_total{{status="{status}"}} {count}')
        for rule, count in c["security_blocks"].items():
            lines.append(f'ragsql_security_blocks_total{{rule="{rule}"}} {count}')
        for strategy, count in c["linker_hits"].items():
            lines.append(f'ragsql_linker_hits_total{{strategy="{strategy}"}} {count}')
        for key, count in c["linker_fallbacks"].items():
            strategy, reason = key.split(":", 1)
            lines.append(
                f'ragsql_linker_fallbacks_total{{strategy="{strategy}",reason="{reason}"}} {count}'
            )
        for outcome, count in c["corrections"].items():
            lines.append(f'ragsql_corrections_total{{outcome="{outcome}"}} {count}')
        for outcome, count in c["perm_cache"].items():
            lines.append(f'ragsql_permission_cache_total{{outcome="{outcome}"}} {count}')
        lines.append(f'ragsql_pool_rejections_total {c["pool_rejections"]}')

        lines.append(f'ragsql_pool_in_flight {metrics["gauges"]["pool_in_flight"]}')

        for stage, stats in metrics["histograms"]["stage_duration_ms"].items():
            lines.append(f'ragsql_stage_duration_avg_ms{{stage="{stage}"}} {stats["avg"]:.2f}')
        pipeline_stats = metrics["histograms"]["pipeline_duration_ms"]
        lines.append(f'ragsql_pipeline_duration_avg_ms {pipeline_stats["avg"]:.2f}')
        lines.append(f'ragsql_pipeline_duration_p95_ms {pipeline_stats["p95"]:.2f}')

        return "\n".join(lines)


def get_metrics() -> MetricsCollector:
    """Obtiene la instancia singleton de métricas"""
    return MetricsCollector()


def timed(stage: str):
    """Decorador que registra la duración de una etapa"""

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.time() - start) * 1000
                get_metrics().record_stage(stage, duration_ms)
                logger.debug(f"{stage} ejecutado en {duration_ms:.2f}ms")

        return wrapper

    return decorator


def get_health_status() -> Dict:
    """Estado de salud derivado de las métricas"""
    stats = get_metrics().get_metrics()
    c = stats["counters"]

    pipeline_stats = stats["histograms"]["pipeline_duration_ms"]
    error_rate = sum(c["errors_total"].values()) / max(1, sum(c["requests_total"].values()))

    status = "healthy"
    issues = []

    if error_rate > 0.1:
        status = "degraded"
        issues.append(f"Error rate alto: {error_rate:.1%}")

    if pipeline_stats["p95"] > 10000:
        status = "degraded"
        issues.append(f"Latencia alta: p95={pipeline_stats['p95']:.0f}ms")

    if c["pool_rejections"] > 0:
        issues.append(f"Pool saturado {c['pool_rejections']} veces")

    fallbacks = sum(c["linker_fallbacks"].values())
    if fallbacks > 0:
        issues.append(f"Linker degradado {fallbacks} veces")

    return {
        "status": status,
        "issues": issues,
        "stats": {
            "total_queries": sum(c["queries_total"].values()),
            "avg_latency_ms": f"{pipeline_stats['avg']:.0f}",
            "p95_latency_ms": f"{pipeline_stats['p95']:.0f}",
            "error_rate": f"{error_rate:.1%}",
            "security_blocks": sum(c["security_blocks"].values()),
        },
    }
