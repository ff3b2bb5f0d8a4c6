"""Result service: the try registry and the read-view façade."""

from .facade import MAX_PAGE_SIZE, TryResultService, status_code_of, validate_pagination
from .registry import TryRegistry

__all__ = ["TryResultService", "TryRegistry", "validate_pagination", "status_code_of", "MAX_PAGE_SIZE"]
