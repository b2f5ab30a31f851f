"""
Webapp Module
FastAPI surface and the runtime shared with the CLI.
"""
from .runtime import Runtime, build_runtime, get_runtime, set_runtime

__all__ = [
    "Runtime",
    "build_runtime",
    "get_runtime",
    "set_runtime",
]
