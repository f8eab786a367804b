"""Prompt templates for the summarizer."""

from __future__ import annotations

SUMMARY_SYSTEM_PROMPT = "You are a helpful assistant that summarizes web content concisely."

METADATA_SYSTEM_PROMPT = (
    "You are a helpful assistant that organizes saved web pages into categories and tags."
)


def clip_text(text: str, max_chars: int) -> str:
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


def build_summary_prompt(title: str, text: str, max_chars: int) -> str:
    return (
        "Please provide a concise summary (2-3 sentences) of the following web page:\n\n"
        f"Title: {title}\n\n"
        f"Content:\n{clip_text(text, max_chars)}"
    )


def build_metadata_prompt(title: str, text: str, max_chars: int) -> str:
    return (
        "Suggest exactly one category and 3-5 tags for the following web page.\n"
        "Respond using exactly this format and nothing else:\n"
        "Category: <category>\n"
        "Tags: <tag1>, <tag2>, <tag3>\n\n"
        f"Title: {title}\n\n"
        f"Content:\n{clip_text(text, max_chars)}"
    )
