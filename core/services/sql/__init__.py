# Servicios SQL: generación, prompt y ejecución
from core.services.sql.generator import SQLGenerator, clean_sql
from core.services.sql.prompt_builder import PromptBuilder
from core.services.sql.executor import QueryExecutor

__all__ = ["SQLGenerator", "clean_sql", "PromptBuilder", "QueryExecutor"]
