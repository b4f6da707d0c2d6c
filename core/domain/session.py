# Entidades de Session

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from uuid import uuid4


@dataclass
class Message:
    """Mensaje en conversación"""

    role: str  # 'user' o 'assistant'
    content: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "Message":
        data = json.loads(raw)
        return cls(role=data["role"], content=data["content"])


@dataclass
class Session:
    """Sesión de conversación ligada a un usuario y un datasource"""

    user_id: int
    data_source_id: int
    title: str = ""
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            user_id=int(data["user_id"]),
            data_source_id=int(data["data_source_id"]),
            title=data.get("title", ""),
            id=data["id"],
            created_at=data.get("created_at", ""),
        )
