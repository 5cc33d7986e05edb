"""Extractor module -- turn markdown documents into ordered code blocks.

Finds fenced code regions, reads the label/package/expected-output
conventions of the book's listings, and decides which blocks can be run.
Malformed markdown is recorded as a StructuralError on the Document; it
never raises.

This module depends only on domain/ types and has zero external imports beyond stdlib.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from typing import TYPE_CHECKING

from domain.models import (
    FLAG_NO_RUN,
    FLAG_SKIP,
    Block,
    Document,
    ExpectedOutput,
    OutputMode,
    StructuralError,
)

if TYPE_CHECKING:
    from domain.models import Settings
    from domain.ports import FileSystemPort

logger = logging.getLogger("litverify.extractor")

_FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")

# First line of a listing names its file: "// Lambdas/BasicLambda.kt".
_LABEL_RE = re.compile(r"^\s*(?://|#)\s*([\w.\-]+(?:/[\w.\-]+)*\.\w+)\s*$")

_PACKAGE_RE = re.compile(r"^\s*package\s+([A-Za-z_][\w.]*)\s*;?\s*$")

_OUTPUT_MARKER_RE = re.compile(
    r'^\s*(?P<open>/\*|""")\s*(?P<sample>sample\s+)?output\s*:(?P<rest>.*)$',
    re.IGNORECASE,
)

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)

_CLOSERS = {"/*": "*/", '"""': '"""'}


class _OutputCommentError(Exception):
    """An output comment was opened but never closed."""


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_documents(
    fs: FileSystemPort,
    root: str = ".",
    include: tuple[str, ...] = (),
) -> list[str]:
    """Return markdown document paths under root, sorted, optionally filtered.

    Args:
        fs: File system rooted at the scan directory.
        root: Directory (relative to fs) to search recursively.
        include: fnmatch patterns; when given, only matching paths are kept.
    """
    paths = sorted(info.path.replace("\\", "/") for info in fs.list_files(root, "**/*.md"))
    if include:
        paths = [p for p in paths if any(fnmatch.fnmatch(p, pat) for pat in include)]
    logger.info("Discovered %d document(s) under %s", len(paths), root)
    return paths


def load_document(fs: FileSystemPort, path: str, settings: Settings) -> Document:
    """Read and extract one document. Unreadable files become StructuralErrors."""
    try:
        text = fs.read_file(path)
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return Document(
            path=path,
            errors=(StructuralError(document=path, line=0, message=f"unreadable: {exc}"),),
        )
    return extract(path, text, settings)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract(path: str, text: str, settings: Settings) -> Document:
    """Extract every fenced region of a document, in order.

    Each fenced region becomes either a Block or a StructuralError, so the
    two together always account for every fence opened in the source.

    Args:
        path: Document path used in identifiers and reports.
        text: Raw markdown text.
        settings: Run settings; the toolchains decide executability.

    Returns:
        A Document with its blocks and structural errors.
    """
    lines = text.splitlines()
    blocks: list[Block] = []
    errors: list[StructuralError] = []
    region = 0
    i = 0

    while i < len(lines):
        match = _FENCE_RE.match(lines[i])
        if match is None:
            i += 1
            continue

        indent = len(match.group(1))
        fence = match.group(2)
        info = match.group(3).strip()
        start_line = i + 1

        if fence[0] == "`" and "`" in info:
            # Inline code span such as ```x```, not a fence.
            i += 1
            continue

        closing = re.compile(rf"^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}\s*$")
        body: list[str] = []
        j = i + 1
        while j < len(lines) and not closing.match(lines[j]):
            body.append(_dedent(lines[j], indent))
            j += 1

        if j >= len(lines):
            errors.append(
                StructuralError(
                    document=path,
                    line=start_line,
                    message=f"unterminated code fence '{fence}'",
                )
            )
            logger.warning("%s:%d: unterminated code fence", path, start_line)
            break

        try:
            blocks.append(_build_block(path, region, start_line, info, body, settings))
        except _OutputCommentError as exc:
            errors.append(StructuralError(document=path, line=start_line, message=str(exc)))
            logger.warning("%s:%d: %s", path, start_line, exc)

        region += 1
        i = j + 1

    logger.debug("%s: %d block(s), %d structural error(s)", path, len(blocks), len(errors))
    return Document(path=path, blocks=tuple(blocks), errors=tuple(errors))


def _dedent(line: str, indent: int) -> str:
    """Remove up to `indent` leading spaces, as CommonMark does for fences."""
    stripped = 0
    while stripped < indent and stripped < len(line) and line[stripped] == " ":
        stripped += 1
    return line[stripped:]


def _build_block(
    path: str,
    index: int,
    line: int,
    info: str,
    body: list[str],
    settings: Settings,
) -> Block:
    """Build one Block from a fenced region's info string and body lines."""
    tokens = info.split()
    language = tokens[0].lower() if tokens else ""
    flags = frozenset(t.lower() for t in tokens[1:])
    source = "\n".join(body) + "\n" if body else ""

    label = parse_label(body)
    if not language and label is not None:
        # Bare fence: the label's extension names the language.
        inferred = settings.toolchain_for_file(label)
        if inferred is not None:
            language = inferred.language
    package = parse_package(body)
    expected, code_end = parse_expected_output(body)

    executable, reason = _executability(
        language, label, flags, body[:code_end], settings
    )
    return Block(
        document=path,
        index=index,
        line=line,
        language=language,
        source=source,
        label=label,
        package=package,
        expected=expected,
        flags=flags,
        executable=executable,
        skip_reason=reason,
    )


def parse_label(body: list[str]) -> str | None:
    """Return the file path named by the block's first non-blank line."""
    for text in body:
        if not text.strip():
            continue
        match = _LABEL_RE.match(text)
        return match.group(1) if match else None
    return None


def parse_package(body: list[str]) -> str | None:
    """Return the package declared by the block, if any."""
    for text in body:
        match = _PACKAGE_RE.match(text)
        if match:
            return match.group(1)
    return None


def parse_expected_output(body: list[str]) -> tuple[ExpectedOutput | None, int]:
    """Find a trailing ``/* Output: ... */`` comment.

    Returns:
        The expected output (or None) and the index of the first body line
        that belongs to the output comment (len(body) when there is none).

    Raises:
        _OutputCommentError: if the last output comment is never closed.
    """
    marker_index = -1
    match: re.Match[str] | None = None
    for idx, text in enumerate(body):
        found = _OUTPUT_MARKER_RE.match(text)
        if found is not None:
            marker_index, match = idx, found
    if match is None:
        return None, len(body)

    closer = _CLOSERS[match.group("open")]
    mode = OutputMode.SAMPLE if match.group("sample") else OutputMode.EXACT
    rest = match.group("rest")

    # Single-line form: /* Output: abc */
    if closer in rest:
        text, _, tail = rest.partition(closer)
        if not _only_blank(body[marker_index + 1 :]) or tail.strip():
            return None, len(body)
        return ExpectedOutput(text=text.strip(), mode=mode), marker_index

    parts: list[str] = [rest.strip()] if rest.strip() else []
    for idx in range(marker_index + 1, len(body)):
        text = body[idx]
        if closer not in text:
            parts.append(text)
            continue
        prefix, _, tail = text.partition(closer)
        if tail.strip() or not _only_blank(body[idx + 1 :]):
            # Output comment is not the end of the listing.
            return None, len(body)
        if prefix.strip():
            parts.append(prefix.rstrip())
        return ExpectedOutput(text="\n".join(parts), mode=mode), marker_index

    raise _OutputCommentError("unterminated output comment")


def _only_blank(lines: list[str]) -> bool:
    return all(not text.strip() for text in lines)


def has_code(lines: list[str]) -> bool:
    """Return True if any line is real code rather than a comment.

    Blocks whose every statement is commented out illustrate code that does
    not compile or fails; they are never executed.
    """
    text = _BLOCK_COMMENT_RE.sub("", "\n".join(lines))
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith(("//", "#")):
            continue
        if _PACKAGE_RE.match(stripped):
            continue
        return True
    return False


def _executability(
    language: str,
    label: str | None,
    flags: frozenset[str],
    code: list[str],
    settings: Settings,
) -> tuple[bool, str]:
    """Decide whether a block is run, and if not, why."""
    if FLAG_SKIP in flags or FLAG_NO_RUN in flags:
        return False, "marked skip"
    if settings.toolchain_for(language) is None:
        return False, f"no toolchain for '{language or 'plain text'}'"
    if label is None:
        return False, "no file label"
    if not has_code(code):
        return False, "no runnable code"
    return True, ""
