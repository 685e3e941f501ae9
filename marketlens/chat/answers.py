from __future__ import annotations

import re

# "**3. Agent Answer:**", "3. Agent Answer:", "### 3. Agent Answer" and similar.
_ANSWER_RE = re.compile(
    r"(?:\*\*|__|#{1,6}[ \t]*)?[ \t]*3\.[ \t]*Agent Answer[ \t]*(?:\*\*|__)?[ \t]*:?[ \t]*(?:\*\*|__)?"
    r"(.*?)"
    r"(?=(?:\*\*|__)[ \t]*\d+\.|^[ \t]*#{1,6}[ \t]*\d+\.|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)


def extract_answer(full_message: str) -> str:
    """Pull the "3. Agent Answer" section out of a structured agent reply.

    Captures up to the next markup-introduced numbered section. When the
    marker is absent the whole message is the answer, returned unchanged.
    """
    match = _ANSWER_RE.search(full_message)
    if match is None:
        return full_message
    return match.group(1).strip()
