# Política de consulta por rol

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryPolicy(BaseModel):
    """
    Restricciones de forma de consulta asociadas a un rol.
    Serializa en camelCase (roleId, maxLimit, ...) y acepta flags 0/1.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    role_id: Optional[int] = Field(None, alias="roleId")
    max_limit: int = Field(1000, alias="maxLimit", ge=1)
    allow_join: bool = Field(True, alias="allowJoin")
    allow_subquery: bool = Field(True, alias="allowSubquery")
    allow_aggregation: bool = Field(True, alias="allowAggregation")

    @field_validator("allow_join", "allow_subquery", "allow_aggregation", mode="before")
    @classmethod
    def _coerce_flag(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return value != 0
        return value

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "QueryPolicy":
        return cls.model_validate_json(raw)

    def to_prompt_text(self) -> str:
        """Restricciones en lenguaje natural para el system prompt"""
        lines = [
            "Debes respetar estrictamente estas restricciones:",
            f"- Toda consulta SELECT debe limitar filas, máximo {self.max_limit}.",
        ]
        if not self.allow_join:
            lines.append("- Prohibido usar JOIN entre tablas.")
        if not self.allow_subquery:
            lines.append("- Prohibido usar subconsultas.")
        if not self.allow_aggregation:
            lines.append("- Prohibido usar funciones de agregación (COUNT, SUM, AVG, MAX, MIN, GROUP BY).")
        else:
            lines.append("- Puedes usar funciones de agregación para estadísticas.")
        return "\n".join(lines) + "\n"


def policy_prompt_text(policy: Optional[QueryPolicy]) -> str:
    if policy is None:
        return "Genera SQL estándar."
    return policy.to_prompt_text()
