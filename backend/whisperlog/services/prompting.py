"""
WhisperLog Backend — Prompt Construction and Placeholder Checks
=================================================================

What:  Builds the formatting prompt every provider adapter sends, and detects
       template placeholders that leaked into a model's output.
Why:   Models given a filled-looking template tend to copy its example text
       ("Discussed Q3 roadmap…") instead of using the user's words. The prompt
       therefore marks the template as style-only, repeats the user's content
       verbatim, and lists the exact placeholder tokens that must not appear.
How:   Pure functions. The same inputs (including `current_date`) always yield
       the same prompt string, which keeps adapter tests exact.

Placeholder tokens are `{name}` spans in the template body, for example
`{date}`, `{attendees}`, `{action_item}`. A leak is a soft warning: the
orchestrator logs it and flags the stored record, but still persists it.
"""

import re
from datetime import date
from typing import List, Optional

DEFAULT_INSTRUCTION = "Follow the template structure and format the content appropriately."

PLACEHOLDER_PATTERN = re.compile(r"\{[A-Za-z_][A-Za-z0-9_\-]*\}")


def extract_placeholders(template: str) -> List[str]:
    """Returns the template's `{name}` tokens in first-seen order, without duplicates."""
    seen: List[str] = []
    for token in PLACEHOLDER_PATTERN.findall(template or ""):
        if token not in seen:
            seen.append(token)
    return seen


def find_placeholder_leaks(template: str, output: str) -> List[str]:
    """Returns the template placeholders that appear verbatim in `output`."""
    return [token for token in extract_placeholders(template) if token in output]


def format_prompt_date(value: date) -> str:
    """October 17, 2026"""
    return f"{value:%B} {value.day}, {value.year}"


def _resolve_instruction(instruction: Optional[str]) -> str:
    if instruction and instruction.strip():
        return instruction.strip()
    return DEFAULT_INSTRUCTION


def _rules(template: str, content_label: str) -> str:
    placeholders = extract_placeholders(template)
    forbidden = ", ".join(placeholders) if placeholders else "(none)"
    return f"""CRITICAL REQUIREMENTS:
1. Use ONLY the information in the user's {content_label} above. Do not invent names, dates, numbers, decisions or tasks.
2. The template is a style guide. Reuse its headings, ordering and markdown layout, never its example text.
3. Replace every placeholder with the matching information from the user's {content_label}. If the {content_label} does not contain it, remove that line or write "Not mentioned".
4. Never output placeholder tokens. Forbidden tokens: {forbidden}
5. Resolve relative dates such as "today" or "tomorrow" against the current date.
6. Return only the formatted markdown document, with no preamble or commentary.

WRONG: copying the template's sample content, or leaving "{{date}}" in the output.
CORRECT: a document with the template's structure filled entirely from the user's {content_label}."""


def build_format_prompt(
    content: str,
    template: str,
    instruction: Optional[str] = None,
    *,
    current_date: Optional[date] = None,
    content_label: str = "content",
) -> str:
    """
    Build the prompt for formatting text (or a finished transcription).

    Args:
        content:       The user's text, embedded literally.
        template:      Markdown skeleton; presented as style-only.
        instruction:   Template instruction; defaults to DEFAULT_INSTRUCTION.
        current_date:  Date used to resolve relative dates (today if None).
        content_label: How the content is referred to ("text", "transcription").
    """
    today = current_date or date.today()
    return f"""You are a precise document formatter. Rewrite the user's {content_label} into the structure of the template below.

CURRENT DATE: {format_prompt_date(today)}

CONTENT TYPE: {content_label}

TEMPLATE STRUCTURE (style and layout only, do NOT copy its content):
---
{template}
---

FORMATTING INSTRUCTIONS:
{_resolve_instruction(instruction)}

USER'S ACTUAL CONTENT:
---
{content}
---

{_rules(template, content_label)}"""


def build_audio_format_prompt(
    template: str,
    instruction: Optional[str] = None,
    *,
    current_date: Optional[date] = None,
) -> str:
    """
    Prompt for single-call audio providers: the recording is attached as a
    separate part, so the content section points at it instead of embedding text.
    """
    today = current_date or date.today()
    return f"""You are a precise document formatter. Listen to the attached voice recording, transcribe it faithfully, and rewrite what was said into the structure of the template below.

CURRENT DATE: {format_prompt_date(today)}

CONTENT TYPE: audio recording

TEMPLATE STRUCTURE (style and layout only, do NOT copy its content):
---
{template}
---

FORMATTING INSTRUCTIONS:
{_resolve_instruction(instruction)}

USER'S ACTUAL CONTENT:
The attached audio recording. Use only what is actually said in it.

{_rules(template, "recording")}"""
