"""Build trace recording."""

from src.trace.tracer import TraceClosedError, Tracer


__all__ = ["TraceClosedError", "Tracer"]
