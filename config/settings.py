"""Configuración del proyecto."""

import os
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


class StoreSettings(BaseSettings):
    # Base de datos de gestión: usuarios, roles, permisos, políticas y datasources
    database_url: str = os.getenv("STORE_DATABASE_URL", "")
    host: str = os.getenv("STORE_HOST", "localhost")
    port: str = os.getenv("STORE_PORT", "5432")
    db: str = os.getenv("STORE_DB", "ragsql_guard")
    user: str = os.getenv("STORE_USER", "postgres")
    password: str = os.getenv("STORE_PASSWORD", "")
    min_connections: int = int(os.getenv("STORE_POOL_MIN", "1"))
    max_connections: int = int(os.getenv("STORE_POOL_MAX", "10"))

    @property
    def db_uri(self) -> str:
        # psycopg2 acepta tanto URL como formato key=value
        if self.database_url:
            return self.database_url
        return f"host={self.host} port={self.port} dbname={self.db} user={self.user} password={self.password}"


class RedisSettings(BaseSettings):
    url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    socket_timeout: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2.0"))


class QdrantSettings(BaseSettings):
    url: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    api_key: str = os.getenv("QDRANT_API_KEY", "")
    collection_name: str = os.getenv("QDRANT_COLLECTION", "schema_tables")
    score_threshold: float = float(os.getenv("QDRANT_SCORE_THRESHOLD", "0.55"))
    search_limit: int = int(os.getenv("QDRANT_SEARCH_LIMIT", "10"))
    search_timeout: float = float(os.getenv("QDRANT_SEARCH_TIMEOUT", "3.0"))


class EmbeddingSettings(BaseSettings):
    model: str = os.getenv("EMBEDDING_MODEL", "paraphrase-multilingual-MiniLM-L12-v2")
    vector_size: int = int(os.getenv("EMBEDDING_VECTOR_SIZE", "384"))


class AISettings(BaseSettings):
    llm_provider: str = os.getenv("LLM_PROVIDER", "deepseek")
    llm_model: str = os.getenv("LLM_MODEL", "")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    deepseek_api_key: str = os.getenv("DEEPSEEK_API_KEY", "")
    anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
    groq_api_key: str = os.getenv("GROQ_API_KEY", "")
    google_api_key: str = os.getenv("GOOGLE_API_KEY", "")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    deepseek_model: str = "deepseek-chat"
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-3-5-haiku-latest"
    groq_model: str = "llama-3.1-8b-instant"
    google_model: str = "gemini-1.5-flash"
    ollama_model: str = "llama3.1"
    temperature: float = 0.0
    max_tokens_response: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))


class CacheSettings(BaseSettings):
    # TTL de permisos: base + jitter aleatorio para evitar expiración masiva
    perm_ttl_minutes: int = int(os.getenv("PERM_TTL_MINUTES", "1440"))
    perm_ttl_jitter_minutes: int = int(os.getenv("PERM_TTL_JITTER_MINUTES", "60"))
    schema_ttl_minutes: int = int(os.getenv("SCHEMA_TTL_MINUTES", "60"))
    role_ttl_hours: int = int(os.getenv("ROLE_TTL_HOURS", "24"))
    lock_ttl_seconds: int = int(os.getenv("PERM_LOCK_TTL_SECONDS", "5"))
    lock_wait_ms: int = int(os.getenv("PERM_LOCK_WAIT_MS", "80"))
    warmup_batch_size: int = 50
    warmup_pause_ms: int = 50


class SessionSettings(BaseSettings):
    ttl_seconds: int = int(os.getenv("SESSION_TTL_SECONDS", "86400"))
    max_history: int = int(os.getenv("SESSION_MAX_HISTORY", "20"))


class WorkerSettings(BaseSettings):
    max_workers: int = int(os.getenv("WORKER_MAX", "20"))
    queue_capacity: int = int(os.getenv("WORKER_QUEUE", "100"))
    event_workers: int = int(os.getenv("EVENT_WORKERS", "2"))


class ExecutionSettings(BaseSettings):
    pool_size: int = int(os.getenv("TARGET_POOL_SIZE", "5"))
    statement_timeout_seconds: int = int(os.getenv("TARGET_STATEMENT_TIMEOUT", "30"))
    summary_sample_rows: int = 5


class LogSettings(BaseSettings):
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Configuración global del proyecto"""
    app_name: str = "RAG-SQL Guard"
    version: str = "1.0.0"
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"
    store: StoreSettings = StoreSettings()
    redis: RedisSettings = RedisSettings()
    vector_db: QdrantSettings = QdrantSettings()
    embedding: EmbeddingSettings = EmbeddingSettings()
    ai: AISettings = AISettings()
    cache: CacheSettings = CacheSettings()
    session: SessionSettings = SessionSettings()
    workers: WorkerSettings = WorkerSettings()
    execution: ExecutionSettings = ExecutionSettings()
    logs: LogSettings = LogSettings()


settings = Settings()
