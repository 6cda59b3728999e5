"""
Cleaning of provider free text before display.

Two modes, picked per display context:
- plain-text strip: citation markers and markdown emphasis removed
- markdown-lite parse: citation markers removed, bold spans and bullet
  lines turned into blocks for the front-end to render
"""

import re
from typing import List, Iterable

from pydantic import BaseModel, Field

from parttimepal.core.schemas import GroundingSource


_CITATION_PATTERNS = [
    re.compile(r"\[(?:First|Second|Third|Fourth|Fifth)\s+tool output[^\]]*\]", re.IGNORECASE),
    re.compile(r"\[[^\]\n]*?\bin search\b[^\]\n]*\]", re.IGNORECASE),
    re.compile(r"\[\d+(?:,\s*\d+)*\]"),
]

_EMPHASIS = re.compile(r"\*{1,3}")
_ORPHAN_COLON = re.compile(r"^[ \t-]*:[ \t]*", re.MULTILINE)
_RUN_OF_SPACES = re.compile(r"[ \t]{2,}")
_TRAILING_SPACES = re.compile(r"[ \t]+$", re.MULTILINE)
_BOLD_SPLIT = re.compile(r"(\*\*.+?\*\*)")

# Section labels the verification prompt asks for
SECTION_HEADINGS = ("Xác thực công ty", "Đánh giá cộng đồng", "Kết luận")


class Span(BaseModel):
    """Inline run of text."""

    text: str
    bold: bool = False


class Block(BaseModel):
    """One rendered line: paragraph, bullet, heading or blank."""

    kind: str
    spans: List[Span] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(span.text for span in self.spans)


def strip_citations(text: str) -> str:
    """Remove tool-output, "in search" and numeric citation markers.

    Repeats until nothing changes, so applying it twice is a no-op.
    """
    if not text:
        return ""

    while True:
        cleaned = text
        for pattern in _CITATION_PATTERNS:
            cleaned = pattern.sub("", cleaned)
        cleaned = _RUN_OF_SPACES.sub(" ", cleaned)
        cleaned = _TRAILING_SPACES.sub("", cleaned)
        if cleaned == text:
            return cleaned.strip()
        text = cleaned


def strip_emphasis(text: str) -> str:
    """Remove *, ** and *** markers."""
    return _EMPHASIS.sub("", text or "")


def clean_plain_text(text: str) -> str:
    """Plain-text mode: citations, emphasis and orphaned leading colons removed."""
    text = strip_emphasis(strip_citations(text))
    text = _ORPHAN_COLON.sub("", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def _parse_spans(line: str) -> List[Span]:
    spans = []
    for part in _BOLD_SPLIT.split(line):
        if not part:
            continue
        if part.startswith("**") and part.endswith("**") and len(part) > 4:
            spans.append(Span(text=strip_emphasis(part[2:-2]), bold=True))
        else:
            plain = strip_emphasis(part)
            if plain:
                spans.append(Span(text=plain))
    return spans


def parse_markdown_lite(text: str) -> List[Block]:
    """
    Structured mode: split text into blocks with bold spans.

    Lines starting with "- " or "* " become bullets, "#" lines and lines
    naming a verification section become headings, empty lines are kept as
    blank blocks so paragraphs stay apart.
    """
    blocks = []

    for line in strip_citations(text).split("\n"):
        stripped = line.strip()

        if not stripped:
            blocks.append(Block(kind="blank"))
        elif stripped.startswith(("- ", "* ")):
            blocks.append(Block(kind="bullet", spans=_parse_spans(stripped[2:].strip())))
        elif stripped.startswith("#"):
            heading = strip_emphasis(stripped.lstrip("#")).strip()
            blocks.append(Block(kind="heading", spans=[Span(text=heading, bold=True)]))
        elif any(label in stripped for label in SECTION_HEADINGS):
            heading = strip_emphasis(stripped).strip()
            blocks.append(Block(kind="heading", spans=[Span(text=heading, bold=True)]))
        else:
            blocks.append(Block(kind="paragraph", spans=_parse_spans(stripped)))

    return blocks


def dedupe_sources(sources: Iterable[GroundingSource]) -> List[GroundingSource]:
    """First occurrence per uri wins; sources without a uri are dropped."""
    seen = set()
    unique = []
    for source in sources:
        if not source.uri or source.uri in seen:
            continue
        seen.add(source.uri)
        unique.append(source)
    return unique
