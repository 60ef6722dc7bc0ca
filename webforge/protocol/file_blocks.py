# FILE: webforge/protocol/file_blocks.py
"""
File-block protocol spoken between the text providers and the pipeline.

Grammar (markers may appear anywhere in the text, not only at line start):

    document   := { noise | block }
    block      := START_MARKER content [ END_MARKER ]
    START_MARKER := "<!-- FILE: " path " -->"
                  | "--- FILE: " path " ---"
                  | "/* FILE: " path " */"
    END_MARKER := "--- END FILE ---"
    content    := every character up to the next marker or end of text

A block's content is trimmed, one wrapping code-fence line is removed from
each end, and blocks shorter than the noise floor are dropped. When a path
repeats, the later block wins.

When the markers yield no usable block, a markdown fallback grammar is
tried: a heading or bold line naming a file, followed by its content
(usually a fenced code block).
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from webforge.core.config import MIN_FILE_CONTENT_LENGTH
from webforge.core.errors import NoFilesParsed

logger = logging.getLogger("webforge.protocol")

FileSet = Dict[str, str]

# ─────────────────────────────────────────────
# Tokens
# ─────────────────────────────────────────────
_MARKER_RE = re.compile(
    r"<!--\s*FILE:[ \t]*(?P<html>[^\s>]+)[ \t]*-->"
    r"|---\s*FILE:\s*(?P<dash>[^\n]+?)\s*---"
    r"|/\*\s*FILE:[ \t]*(?P<comment>[^\s*]+)[ \t]*\*/"
    r"|(?P<end>---\s*END\s+FILE\s*---)"
)

_FENCE_OPEN_RE = re.compile(r"^\s*(`{3,}|~{3,})[\w+#.-]*\s*$")
_FENCE_CLOSE_RE = re.compile(r"^\s*(`{3,}|~{3,})\s*$")

_HEADING_RE = re.compile(
    r"^\s*(?:#{1,6}\s+(?:\*\*|__)?|\*\*|__)\s*"
    r"(?:File(?:name)?\s*:\s*)?"
    r"`?(?P<path>[\w][\w./-]*\.[A-Za-z0-9]+)`?"
    r"\s*(?:\*\*|__)?\s*:?\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class MarkerToken:
    kind: str  # html | dash | comment | end
    path: Optional[str]
    start: int
    end: int


@dataclass(frozen=True)
class FileBlock:
    path: str
    content: str


def tokenize(text: str) -> Iterator[MarkerToken]:
    """Yield marker tokens in order of appearance."""
    for m in _MARKER_RE.finditer(text or ""):
        kind = m.lastgroup or "end"
        path = None if kind == "end" else m.group(kind)
        yield MarkerToken(kind=kind, path=path, start=m.start(), end=m.end())


# ─────────────────────────────────────────────
# Content helpers
# ─────────────────────────────────────────────
def normalize_path(raw: str) -> Optional[str]:
    p = (raw or "").strip().strip("`'\"").strip()
    p = p.replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    p = p.lstrip("/")
    if not p:
        return None
    if ".." in p.split("/"):
        return None
    return p


def strip_code_fences(content: str) -> str:
    """Remove one wrapping fence line at each end, if present."""
    t = (content or "").strip()
    lines = t.split("\n")
    if lines and _FENCE_OPEN_RE.match(lines[0]):
        lines = lines[1:]
    if lines and _FENCE_CLOSE_RE.match(lines[-1]):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _first_fenced_body(content: str) -> Optional[str]:
    lines = content.split("\n")
    for i, line in enumerate(lines):
        if not _FENCE_OPEN_RE.match(line):
            continue
        for j in range(i + 1, len(lines)):
            if _FENCE_CLOSE_RE.match(lines[j]):
                return "\n".join(lines[i + 1:j]).strip()
        return "\n".join(lines[i + 1:]).strip()
    return None


# ─────────────────────────────────────────────
# Scanners
# ─────────────────────────────────────────────
def _scan_marker_blocks(text: str) -> List[FileBlock]:
    blocks: List[FileBlock] = []
    current: Optional[MarkerToken] = None

    for tok in tokenize(text):
        if current is not None:
            blocks.append(FileBlock(current.path or "", text[current.end:tok.start]))
            current = None
        if tok.kind != "end":
            current = tok

    if current is not None:
        blocks.append(FileBlock(current.path or "", text[current.end:]))
    return blocks


def _scan_heading_blocks(text: str) -> List[FileBlock]:
    blocks: List[FileBlock] = []
    lines = (text or "").split("\n")
    heads = []
    for i, line in enumerate(lines):
        m = _HEADING_RE.match(line)
        if m:
            heads.append((i, m.group("path")))

    for n, (idx, path) in enumerate(heads):
        stop = heads[n + 1][0] if n + 1 < len(heads) else len(lines)
        body = "\n".join(lines[idx + 1:stop])
        fenced = _first_fenced_body(body)
        blocks.append(FileBlock(path, fenced if fenced is not None else body))
    return blocks


def scan_file_blocks(text: str, min_length: Optional[int] = None) -> List[FileBlock]:
    """
    Scan provider text into cleaned blocks (duplicates kept, in order).
    Never raises; an empty list means nothing usable was found.
    """
    floor = MIN_FILE_CONTENT_LENGTH if min_length is None else min_length

    cleaned = _clean_blocks(_scan_marker_blocks(text or ""), floor)
    if not cleaned:
        cleaned = _clean_blocks(_scan_heading_blocks(text or ""), floor)
    return cleaned


def _clean_blocks(raw_blocks: List[FileBlock], floor: int) -> List[FileBlock]:
    cleaned: List[FileBlock] = []
    for b in raw_blocks:
        path = normalize_path(b.path)
        if not path:
            logger.debug("Dropping block with unusable path %r", b.path)
            continue
        content = strip_code_fences(b.content)
        if len(content) < max(floor, 1):
            continue
        cleaned.append(FileBlock(path, content))
    return cleaned


def parse_file_blocks(text: str, min_length: Optional[int] = None) -> FileSet:
    """Parse provider text into a path -> content map (last write wins)."""
    files: FileSet = {}
    for block in scan_file_blocks(text, min_length=min_length):
        files[block.path] = block.content

    if not files:
        raise NoFilesParsed(raw=(text or "")[:500])

    logger.info("Parsed %d files: %s", len(files), ", ".join(files.keys()))
    return files


def format_file_set(files: FileSet) -> str:
    """Render a FileSet back into marker text (for repair and edit prompts)."""
    return "\n\n".join(f"<!-- FILE: {path} -->\n{content}" for path, content in files.items())
