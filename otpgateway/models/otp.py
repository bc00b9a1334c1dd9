from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class OTP:
    """State of one verification attempt, keyed by (namespace, id).

    ``ttl`` is the remaining lifetime in seconds as last read from the store.
    It is never persisted as a field.
    """

    namespace: str = ""
    id: str = ""
    otp: str = ""
    to: str = ""
    channel_description: str = ""
    address_description: str = ""
    extra: str = "{}"
    provider: str = ""
    max_attempts: int = 0
    attempts: int = 0
    closed: bool = False
    ttl: float = 0.0

    @property
    def locked(self) -> bool:
        return self.attempts >= self.max_attempts

    def extra_json(self) -> Any:
        try:
            return json.loads(self.extra or "{}")
        except ValueError:
            return {}

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["extra"] = self.extra_json()
        return data
