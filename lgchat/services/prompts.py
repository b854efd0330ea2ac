"""Instruction template wrapped around every user question."""

from __future__ import annotations

_TEMPLATE = (
    ' user wrote this " {text} ". answer that and \n'
    "add that location coordinates in square brackets at the end of answer\n"
    "For example: 'if user asked what is london population then answer will be like "
    "London population is 2 million.[51.5074°N, 0.1278°W]'.\n"
    "\n"
    "Keep the response concise."
)


def format_prompt(text: str) -> str:
    """Ask the model to answer ``text`` and append location coordinates in brackets."""
    return _TEMPLATE.format(text=text)
