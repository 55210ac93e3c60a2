"""
Utility functions package
"""
from utils.logger import logger
from utils.retry_decorator import with_retry
from utils.llm_client import llm_client, LLMClient, LLMProvider

__all__ = [
    "logger",
    "with_retry",
    "llm_client",
    "LLMClient",
    "LLMProvider",
]
