"""Shell command text handling: segmentation, normalisation and inline scripts.

Nothing here executes or fully parses shell.  The functions only need to be
good enough to find every program a command line would start, so that policy
rules can be applied per segment.  None of them raise on any input.

Known limitation: a backslash escapes the next character inside single quotes
too, unlike POSIX shells.  ``echo 'x\\'; rm -rf ~`` therefore stays a single
segment here although a shell would run ``rm`` as a second command.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from permission_hook.policy.models import InlineScript, InterpreterKind

# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

_HEREDOC_OPENER = re.compile(
    r"""<<(-?)[ \t]*(?:'([^'\n]*)'|"([^"\n]*)"|\\?([^\s;&|<>()'"]+))"""
)

_REDIRECTION = re.compile(
    r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')"""
    r"""|\s*\d*>&\d*"""
    r"""|\s*(?:\d*|&)>>?\s*(?:"[^"]*"|'[^']*'|\S+)"""
    r"""|\s*(?<!<)<(?![<&])\s*(?:"[^"]*"|'[^']*'|\S+)"""
)


@dataclass
class _PendingHeredoc:
    delimiter: str
    strip_tabs: bool
    owner: int | None = None


def split_command_segments(command: str) -> list[str]:
    """Split *command* on unquoted control operators.

    Boundaries are ``|``, ``||``, ``&&``, ``;``, a standalone ``&`` and
    newline.  Here-document bodies stay with the segment that opened them.
    Each segment has simple redirections stripped; empty segments are dropped.
    """
    raw: list[str] = []
    current: list[str] = []
    pending: list[_PendingHeredoc] = []
    in_single = False
    in_double = False
    i = 0
    n = len(command)

    def flush() -> None:
        text = "".join(current)
        current.clear()
        if not text.strip():
            return
        raw.append(text)
        for heredoc in pending:
            if heredoc.owner is None:
                heredoc.owner = len(raw) - 1

    while i < n:
        c = command[i]
        nxt = command[i + 1] if i + 1 < n else ""

        if c == "\\":
            current.append(c)
            if nxt:
                current.append(nxt)
            i += 2
            continue

        if in_single:
            if c == "'":
                in_single = False
            current.append(c)
            i += 1
            continue

        if in_double:
            if c == '"':
                in_double = False
            current.append(c)
            i += 1
            continue

        if c == "'":
            in_single = True
            current.append(c)
        elif c == '"':
            in_double = True
            current.append(c)
        elif c == "<" and command.startswith("<<<", i):
            current.append("<<<")
            i += 3
            continue
        elif c == "<" and nxt == "<":
            match = _HEREDOC_OPENER.match(command, i)
            if match is None:
                current.append("<<")
                i += 2
                continue
            delimiter = match.group(2) or match.group(3) or match.group(4) or ""
            pending.append(_PendingHeredoc(delimiter, strip_tabs=bool(match.group(1))))
            current.append(match.group(0))
            i = match.end()
            continue
        elif c == "\n":
            if pending:
                i = _consume_heredoc_bodies(command, i + 1, pending, raw, current)
                pending.clear()
            else:
                i += 1
            flush()
            continue
        elif c == "|":
            flush()
            i += 2 if nxt in ("|", "&") else 1
            continue
        elif c == "&":
            if nxt == "&":
                flush()
                i += 2
                continue
            prev = current[-1] if current else ""
            if prev in (">", "<") or nxt == ">":
                current.append(c)
            else:
                flush()
        elif c == ";":
            flush()
        else:
            current.append(c)
        i += 1

    flush()

    segments = [s for s in (strip_redirections(r) for r in raw) if s]
    if not segments:
        return [command.strip()]
    return segments


def _consume_heredoc_bodies(
    command: str,
    start: int,
    pending: list[_PendingHeredoc],
    raw: list[str],
    current: list[str],
) -> int:
    """Append here-document bodies starting at *start*; return the new index."""
    pos = start
    for heredoc in pending:
        body: list[str] = []
        while pos < len(command):
            end = command.find("\n", pos)
            line = command[pos:] if end == -1 else command[pos:end]
            pos = len(command) if end == -1 else end + 1
            body.append(line)
            candidate = line.lstrip("\t") if heredoc.strip_tabs else line
            if candidate.rstrip() == heredoc.delimiter:
                break
        text = "\n" + "\n".join(body)
        if heredoc.owner is None:
            current.append(text)
        else:
            raw[heredoc.owner] += text
    return pos


def strip_redirections(segment: str) -> str:
    """Remove ``>``, ``>>``, ``<`` and ``N>&M`` redirections outside quotes.

    Here-documents (``<<``) are left alone, and when a segment carries one
    only its first line is touched so the body stays verbatim.
    """
    segment = segment.strip()
    head, sep, body = segment.partition("\n")
    if not (sep and _HEREDOC_OPENER.search(head)):
        head, sep, body = segment, "", ""
    head = _REDIRECTION.sub(lambda m: m.group(1) or "", head).strip()
    return head + sep + body if sep else head


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def extract_program_name(path: str) -> str:
    """Return the final path component of *path* without a ``.exe`` suffix."""
    name = re.split(r"[\\/]", path)[-1]
    if name.lower().endswith(".exe"):
        return name[:-4]
    return name


def normalize_program_path(segment: str) -> str:
    """Replace a leading program path with its bare program name.

    ``"C:\\tools\\adb.exe" logcat`` becomes ``adb logcat`` and
    ``/usr/bin/python3 x.py`` becomes ``python3 x.py``.
    """
    segment = segment.strip()

    if segment[:1] in ('"', "'"):
        quote = segment[0]
        end = segment.find(quote, 1)
        if end != -1:
            program = extract_program_name(segment[1:end])
            rest = segment[end + 1 :].lstrip()
            return f"{program} {rest}" if rest else program

    match = re.match(r"(\S+)(.*)", segment, re.DOTALL)
    if match is None:
        return segment
    first, rest = match.group(1), match.group(2).lstrip()
    if "/" in first or "\\" in first:
        program = extract_program_name(first)
        return f"{program} {rest}" if rest else program
    return segment


# ---------------------------------------------------------------------------
# Inline scripts
# ---------------------------------------------------------------------------

_PYTHON = r"python(?:3(?:\.\d+)?)?"

_HEREDOC_SCRIPT = re.compile(
    rf"""^({_PYTHON}|node)\b[^\n<]*<<(-?)[ \t]*['"]?([\w.-]+)['"]?[^\n]*\n(.*)""",
    re.DOTALL,
)

# (kind, command prefix) in match order; the source follows the prefix.
_FLAG_FORMS: tuple[tuple[InterpreterKind, re.Pattern[str]], ...] = (
    (InterpreterKind.PYTHON, re.compile(rf"^{_PYTHON}\s+-c\s+", re.DOTALL)),
    (InterpreterKind.NODE, re.compile(r"^node\s+(?:-e|--eval)\s+", re.DOTALL)),
    (
        InterpreterKind.POWERSHELL,
        re.compile(
            r"^(?:powershell|pwsh)(?:\.exe)?\s+(?:-\w+\s+)*?(?:-Command|-c)\s+",
            re.DOTALL | re.IGNORECASE,
        ),
    ),
    (InterpreterKind.CMD, re.compile(r"^cmd(?:\.exe)?\s+/c\s+", re.DOTALL | re.IGNORECASE)),
)


def parse_heredoc(command: str) -> InlineScript | None:
    """Parse ``python <<'EOF' ... EOF`` style commands."""
    match = _HEREDOC_SCRIPT.match(command)
    if match is None:
        return None
    interpreter, strip_tabs, delimiter, rest = match.groups()

    lines: list[str] = []
    for line in rest.split("\n"):
        candidate = line.lstrip("\t") if strip_tabs else line
        if candidate.rstrip() == delimiter:
            break
        lines.append(line)
    else:
        # No terminator line.
        return None

    kind = InterpreterKind.NODE if interpreter == "node" else InterpreterKind.PYTHON
    return InlineScript(kind=kind, source="\n".join(lines).strip())


def parse_inline_script(command: str) -> InlineScript | None:
    """Return the inline script *command* hands to an interpreter, if any."""
    script = parse_heredoc(command)
    if script is not None:
        return script

    for kind, prefix in _FLAG_FORMS:
        match = prefix.match(command)
        if match is None:
            continue
        return InlineScript(kind=kind, source=_unquote(command[match.end() :]))
    return None


def _unquote(text: str) -> str:
    """Strip a surrounding quote pair; fall back to the raw text."""
    text = text.strip()
    if text[:1] in ('"', "'"):
        quote = text[0]
        end = text.rfind(quote)
        if end > 0:
            return text[1:end]
        return text[1:]
    return text
