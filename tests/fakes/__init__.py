# Fake implementations for testing

from .fake_http import FakeHttpExecutor, RecordedRequest, response
from .fake_registry import FakeRegistry

__all__ = ["FakeHttpExecutor", "FakeRegistry", "RecordedRequest", "response"]
