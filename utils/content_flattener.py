"""
Content Flattener - reduces provider message content to a single string
"""
from typing import Any, Mapping


def flatten_message_content(content: Any) -> str:
    """
    Flatten a chat message ``content`` value

    A string is returned unchanged. A list of chunks contributes each chunk's
    ``text`` (or the chunk itself when it is a plain string); empty fragments are
    skipped and the rest joined with newlines in order. Anything else is "".
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, (list, tuple)):
        return ""

    fragments = []
    for chunk in content:
        if isinstance(chunk, str):
            text = chunk
        elif isinstance(chunk, Mapping) and isinstance(chunk.get("text"), str):
            text = chunk["text"]
        else:
            continue
        if text:
            fragments.append(text)
    return "\n".join(fragments)


def extract_reply_text(payload: Any) -> str:
    """Flattened ``choices[0].message.content`` of a chat completion payload"""
    if not isinstance(payload, Mapping):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first_choice = choices[0]
    if not isinstance(first_choice, Mapping):
        return ""
    message = first_choice.get("message")
    if not isinstance(message, Mapping):
        return ""
    return flatten_message_content(message.get("content"))
