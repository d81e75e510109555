"""Pattern substitution for repository and cache layouts.

Patterns use ``[token]`` placeholders and ``( ... )`` optional sections which
are dropped when a token inside them has no value, e.g.
``[organisation]/[module]/[revision]/[artifact]-[revision](-[classifier]).[ext]``.
"""
from __future__ import annotations

import re
from typing import Dict, Optional

_TOKEN = re.compile(r"\[([^\]]+)\]")
_OPTIONAL = re.compile(r"\(([^()]*)\)")
_PLACEHOLDER = "\x00{}\x00"


def _value(tokens: Dict[str, Optional[str]], name: str) -> Optional[str]:
    value = tokens.get(name)
    if value is None or value == "":
        return None
    return str(value)


def substitute(pattern: str, tokens: Dict[str, Optional[str]]) -> str:
    """Replace tokens and resolve optional sections.

    Unknown tokens outside optional sections are left as-is so a caller can
    detect an incomplete substitution.
    """

    def optional(match: "re.Match[str]") -> str:
        body = match.group(1)
        names = _TOKEN.findall(body)
        if any(_value(tokens, n) is None for n in names):
            return ""
        return _TOKEN.sub(lambda m: _value(tokens, m.group(1)) or m.group(0), body)

    previous = None
    text = pattern
    while previous != text:
        previous = text
        text = _OPTIONAL.sub(optional, text)
    return _TOKEN.sub(lambda m: _value(tokens, m.group(1)) or m.group(0), text)


def m2_organisation(organisation: str) -> str:
    """Maven layout stores ``org.apache`` under ``org/apache``."""
    return organisation.replace(".", "/")


def token_listing(pattern: str, token: str, tokens: Dict[str, Optional[str]]):
    """Locate where values of ``token`` can be listed.

    Returns ``(parent, regex)``: the already-substituted path of the directory
    to list and a compiled regex whose first group captures the token value in
    an entry name. Returns None when the token does not appear in the pattern.
    """
    placeholder = _PLACEHOLDER.format(token)
    values = dict(tokens)
    values[token] = placeholder
    text = substitute(pattern, values)
    if placeholder not in text:
        return None
    index = text.index(placeholder)
    start = text.rfind("/", 0, index) + 1
    end = text.find("/", index)
    segment = text[start:] if end == -1 else text[start:end]
    parent = text[:start]
    expr = re.escape(segment).replace(re.escape(placeholder), "(.+)", 1)
    expr = expr.replace(re.escape(placeholder), "\\1")
    expr = _TOKEN.sub(".*", expr.replace("\\[", "[").replace("\\]", "]"))
    return parent, re.compile(f"^{expr}$")

