import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    OPERATION_FAILED = 1000
    UNKNOWN_REQUEST = 1001
    MALFORMED_REQUEST = 1003


@dataclass
class Response:
    id: str
    type: str
    result: Any = None
    error_code: int | None = None
    error_message: str = ""

    @property
    def is_error(self) -> bool:
        return self.error_code is not None

    def to_dict(self) -> dict[str, Any]:
        if self.is_error:
            return {
                "id": self.id,
                "type": self.type,
                "error": {"code": self.error_code, "message": self.error_message},
            }
        return {"id": self.id, "type": self.type, "result": self.result}

    def encode(self) -> bytes:
        """One newline-terminated JSON line."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode() + b"\n"


def success(request_id: str, request_type: str, result: Any = None) -> Response:
    return Response(id=request_id, type=f"{request_type}_resp", result=result)


def failure(request_id: str, code: int, message: str) -> Response:
    return Response(id=request_id, type="error", error_code=int(code), error_message=message)
