from .request import Request
from .response import ErrorCode, Response
from .server import RPCServer

__all__ = ["ErrorCode", "RPCServer", "Request", "Response"]
