"""
LangGraph State Definition
"""
from typing import TypedDict, Optional, Dict
from datetime import datetime


class ActionState(TypedDict):
    """
    State object passed between LangGraph nodes

    One run covers a single AI action: prompt assembly, the provider call
    (which returns the flattened reply), extraction and registry validation.
    Merging happens after the graph, against the answer store as it is then.
    """
    # Input
    action_name: str
    answers: Dict[str, str]  # snapshot used for the prompt context only
    brief: Optional[str]

    # Prompt
    prompt: Optional[str]

    # Provider call
    model: Optional[str]

    # Extraction
    reply_text: Optional[str]
    candidates: Optional[Dict[str, str]]

    # Timing & Metadata
    start_time: datetime
    agent_timings: Dict[str, float]
