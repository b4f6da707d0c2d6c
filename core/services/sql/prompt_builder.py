# Arma el system prompt: plantilla base + ejemplos por dialecto + schema + política

import logging

from utils.prompts import SQL_SYSTEM_BASE, FEW_SHOT

logger = logging.getLogger(__name__)

DIALECT_NAMES = {
    "postgresql": "PostgreSQL",
    "postgres": "PostgreSQL",
    "mysql": "MySQL",
    "mariadb": "MySQL",
    "sqlserver": "SQL Server",
    "mssql": "SQL Server",
    "sqlite": "SQLite",
}

_ALIASES = {"postgres": "postgresql", "mariadb": "mysql", "mssql": "sqlserver"}


class PromptBuilder:
    def __init__(self, template: str = SQL_SYSTEM_BASE, few_shot: dict = None):
        self.template = template
        self.few_shot = few_shot if few_shot is not None else FEW_SHOT

    def build(self, dialect: str, schema_text: str, policy_text: str) -> str:
        key = _ALIASES.get(dialect.lower(), dialect.lower())
        examples = self.few_shot.get(key)
        if examples is None:
            logger.debug(f"Sin ejemplos para dialecto '{dialect}', usando postgresql")
            examples = self.few_shot.get("postgresql", "")

        return self.template.format(
            dialect=DIALECT_NAMES.get(dialect.lower(), dialect),
            schema=schema_text,
            policy=policy_text,
            few_shot=examples,
        )
