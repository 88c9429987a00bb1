import json
from dataclasses import dataclass, field
from typing import Any

from kvexplorer.models.exceptions import DecodeFailureError


@dataclass
class Request:
    id: str
    type: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def decode(cls, line: bytes | str) -> "Request":
        """
        Parse one envelope line.

        Raises:
            DecodeFailureError: Not a JSON object, or id/type/params have the
                wrong shape.
        """
        try:
            payload = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeFailureError(f"Invalid request format: {e}") from e

        if not isinstance(payload, dict):
            raise DecodeFailureError("Invalid request format: envelope must be an object")

        request_id = payload.get("id", "")
        if not isinstance(request_id, str):
            raise DecodeFailureError("Invalid request format: 'id' must be a string")

        request_type = payload.get("type", "")
        if not isinstance(request_type, str):
            raise DecodeFailureError(
                "Invalid request format: 'type' must be a string", request_id
            )

        params = payload.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise DecodeFailureError(
                "Invalid request format: 'params' must be an object", request_id
            )

        return cls(id=request_id, type=request_type, params=params)

    def has(self, name: str) -> bool:
        return self.params.get(name) is not None

    def get(self, name: str, default: Any = None) -> Any:
        value = self.params.get(name)
        return default if value is None else value

    def get_str(self, name: str, default: str = "") -> str:
        value = self.get(name, default)
        if not isinstance(value, str):
            raise DecodeFailureError(f"'{name}' must be a string", self.id)
        # JSON escapes can spell lone surrogates, which have no UTF-8 form
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            raise DecodeFailureError(f"'{name}' must be valid UTF-8", self.id) from None
        return value

    def get_int(self, name: str, default: int = 0) -> int:
        value = self.get(name, default)
        # bool is an int subclass but never a meaningful count here
        if isinstance(value, bool) or not isinstance(value, int):
            raise DecodeFailureError(f"'{name}' must be an integer", self.id)
        return value

    def require_str(self, name: str) -> str:
        if not self.has(name):
            raise DecodeFailureError(f"Missing '{name}' parameter", self.id)
        return self.get_str(name)
