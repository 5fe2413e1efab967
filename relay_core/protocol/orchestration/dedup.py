"""
Duplicate suppression for streamed output.

When a streaming request recurses, the follow-up response often repeats what
the previous level already streamed before adding the new answer. The
heuristics here are a best-effort policy: short paragraphs that legitimately
repeat can be suppressed too.
"""
import re
from typing import List, Optional, Sequence

_PARAGRAPH_RE = re.compile(r"\n[ \t]*\n")


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_RE.split(text)]


def is_content_duplicate(content: str, sent_contents: Sequence[str]) -> bool:
    """
    True when `content` adds nothing to `sent_contents`: an exact repeat, a
    piece of something already sent, or made only of paragraphs already sent.
    """
    core = content.strip() if isinstance(content, str) else ""
    if not core:
        return False
    for sent in sent_contents:
        if core == sent.strip() or core in sent:
            return True
    paragraphs = [p for p in _paragraphs(content) if p]
    if len(paragraphs) <= 1:
        return False
    return all(any(p in sent for sent in sent_contents) for p in paragraphs)


class ContentDeduplicator:
    """
    Per-request history of emitted fragments.

    `filter()` returns the part of a fragment that is still new, or None when
    nothing is. Earlier output of at least `min_echo_chars` that reappears
    inside a fragment is cut out before the paragraph check.
    """

    def __init__(self, min_echo_chars: int = 16):
        self.min_echo_chars = min_echo_chars
        self.sent: List[str] = []

    def _candidates(self) -> List[str]:
        if len(self.sent) > 1:
            return self.sent + ["".join(self.sent)]
        return list(self.sent)

    def _remove_echoes(self, fragment: str) -> str:
        for sent in sorted(self.sent, key=len, reverse=True):
            core = sent.strip()
            if len(core) >= self.min_echo_chars and core in fragment:
                fragment = fragment.replace(core, "", 1)
        return fragment

    def filter(self, fragment: str) -> Optional[str]:
        if not fragment or not fragment.strip():
            return None
        candidates = self._candidates()
        if is_content_duplicate(fragment, candidates):
            return None

        text = self._remove_echoes(fragment)
        if not text.strip():
            return None

        pieces = _PARAGRAPH_RE.split(text)
        present = [i for i, p in enumerate(pieces) if p.strip()]
        kept = [i for i in present if not any(pieces[i].strip() in c for c in candidates)]
        if not kept:
            return None
        if len(kept) < len(present):
            lead = "\n\n" if kept[0] != present[0] else ""
            text = lead + "\n\n".join(pieces[i].strip() for i in kept)

        self.sent.append(text)
        return text
