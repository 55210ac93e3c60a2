"""
Agents package - extraction, merging and prompt context for AI actions
"""
from agents.extractor_agent import ExtractorAgent, extractor_agent
from agents.merger_agent import MergerAgent, merger_agent
from agents.context_builder import ContextBuilder, context_builder
from agents.action_catalog import ActionCatalog, ActionDescriptor, action_catalog

__all__ = [
    "ExtractorAgent",
    "extractor_agent",
    "MergerAgent",
    "merger_agent",
    "ContextBuilder",
    "context_builder",
    "ActionCatalog",
    "ActionDescriptor",
    "action_catalog",
]
