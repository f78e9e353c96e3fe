"""
Text asset transformers.

Each transformer takes decoded text and returns minified text, or None when
it has nothing usable. Exceptions are left to the caller, which treats them
as a failed transform for the file being processed.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

import cssmin
import htmlmin
import rcssmin
import rjsmin


logger = logging.getLogger(__name__)

TextTransformer = Callable[[str], Optional[str]]

_SCRIPT_RE = re.compile(r"<script\b([^>]*)>(.*?)</script\s*>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style\b([^>]*)>(.*?)</style\s*>", re.IGNORECASE | re.DOTALL)
_SRC_ATTR_RE = re.compile(r"\bsrc\s*=", re.IGNORECASE)
_TYPE_ATTR_RE = re.compile(r"\btype\s*=\s*[\"']?([^\"'\s>]+)", re.IGNORECASE)

JS_TYPES = {
    "text/javascript",
    "application/javascript",
    "application/x-javascript",
    "text/ecmascript",
    "application/ecmascript",
    "module",
}


def select_smallest(results: Sequence[Optional[str]]) -> Optional[str]:
    """
    Return the shortest usable candidate, or None if there is none.

    Empty strings count as absent. Ties go to the earlier candidate.
    """
    best: Optional[str] = None
    for candidate in results:
        if not candidate:
            continue
        if best is None or len(candidate) < len(best):
            best = candidate
    return best


def css_with_cssmin(css: str) -> Optional[str]:
    return cssmin.cssmin(css) or None


def css_with_rcssmin(css: str) -> Optional[str]:
    return rcssmin.cssmin(css) or None


# Order matters: on equal length the first one wins.
CSS_MINIFIERS: List[Tuple[str, TextTransformer]] = [
    ("cssmin", css_with_cssmin),
    ("rcssmin", css_with_rcssmin),
]


def minify_css(css: str, minifiers: Optional[Sequence[Tuple[str, TextTransformer]]] = None) -> Optional[str]:
    """Run every CSS minifier on the same input and keep the smallest result."""
    results = []
    for name, fn in minifiers or CSS_MINIFIERS:
        try:
            results.append(fn(css))
        except Exception as e:
            # One broken candidate doesn't disqualify the others.
            logger.debug(f"{name} failed: {e}")
            results.append(None)
    return select_smallest(results)


def minify_js(code: str) -> Optional[str]:
    return rjsmin.jsmin(code) or None


def minify_inline_js(code: str) -> str:
    """Minify a <script> body, keeping the original unless the result is shorter."""
    new_code = minify_js(code)
    if new_code and len(new_code) < len(code):
        return new_code
    return code


def minify_inline_css(css: str) -> str:
    new_css = minify_css(css)
    if new_css and len(new_css) < len(css):
        return new_css
    return css


def minify_html(html: str) -> Optional[str]:
    """
    Minify an HTML document including its inline <style> and <script> bodies.

    Inline bodies are minified first and then tagged with htmlmin's "pre"
    attribute, so the HTML pass keeps them verbatim and drops the marker.
    """
    html = _STYLE_RE.sub(_replace_style, html)
    html = _SCRIPT_RE.sub(_replace_script, html)

    return htmlmin.minify(
        html,
        remove_comments=True,
        remove_empty_space=True,
        reduce_boolean_attributes=True,
        keep_pre=False,
    ) or None


def _replace_style(m: "re.Match[str]") -> str:
    attrs, body = m.group(1), m.group(2)
    if not body.strip():
        return m.group(0)
    return f"<style{attrs} pre>{minify_inline_css(body)}</style>"


def _replace_script(m: "re.Match[str]") -> str:
    attrs, body = m.group(1), m.group(2)
    if not body.strip() or _SRC_ATTR_RE.search(attrs) or not _is_js_type(attrs):
        return m.group(0)
    return f"<script{attrs} pre>{minify_inline_js(body)}</script>"


def _is_js_type(attrs: str) -> bool:
    m = _TYPE_ATTR_RE.search(attrs)
    if m is None:
        return True
    return m.group(1).lower() in JS_TYPES
