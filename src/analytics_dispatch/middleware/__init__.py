"""Event middleware: the chain and built-in transformers."""

from .chain import Middleware, MiddlewareChain
from .builtins import (
    context_router,
    default_middlewares,
    logging_middleware,
    pii_scrubber_middleware,
    rename_middleware,
    routing_middleware,
    sampling_middleware,
    validation_middleware,
)

__all__ = [
    "Middleware",
    "MiddlewareChain",
    "context_router",
    "default_middlewares",
    "logging_middleware",
    "pii_scrubber_middleware",
    "rename_middleware",
    "routing_middleware",
    "sampling_middleware",
    "validation_middleware",
]
