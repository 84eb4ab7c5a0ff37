"""
Translation Prompts - the fixed instruction sent with every chunk,
and cleanup of what the model sends back.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
from __future__ import annotations

import re
from typing import Dict, List

SYSTEM_PROMPT_TEMPLATE = """You are a professional document translator. Rules:
- Output ONLY the translated text, no comments, no preface
- Preserve formatting, line breaks and paragraph structure exactly
- Keep ordered/bulleted lists and numbering
- Never add headings
- Translate to {target_language}
- If text is unclear, translate it as best as possible"""

# Models sometimes wrap the answer despite the instructions
_CODE_FENCE_RE = re.compile(r'^```[\w-]*[ \t]*\n?(.*?)\n?```$', re.DOTALL)
_PREAMBLE_RE = re.compile(
    r'^(here\s+is\s+(the\s+|your\s+)?translation'
    r'(\s+(in|to|into)\s+[^\n:]{1,40})?\s*:?|translation\s*:)[ \t]*\n*',
    re.IGNORECASE,
)


def build_system_prompt(target_language: str) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(target_language=target_language.strip() or "English")


def build_messages(text: str, target_language: str) -> List[Dict[str, str]]:
    """Chat messages for one chunk."""
    return [
        {"role": "system", "content": build_system_prompt(target_language)},
        {"role": "user", "content": text},
    ]


def clean_translation(raw: str) -> str:
    """Strip code fences and 'Here is the translation:' preambles."""
    out = (raw or "").strip()

    fenced = _CODE_FENCE_RE.match(out)
    if fenced:
        out = fenced.group(1).strip()

    out = _PREAMBLE_RE.sub("", out, count=1).strip()

    # a preamble may sit in front of a fenced block
    fenced = _CODE_FENCE_RE.match(out)
    if fenced:
        out = fenced.group(1).strip()

    return out
