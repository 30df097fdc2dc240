"""
Storage layer for the invocation history.
"""

from .models import InvocationRecord
from .repository import FetchResult, RecordRepository

__all__ = ["InvocationRecord", "FetchResult", "RecordRepository"]
