"""Markup stripping, truncation and URL canonicalization."""

from __future__ import annotations

import html as html_lib
import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", flags=re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", flags=re.IGNORECASE | re.DOTALL)
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_TRACKING_PARAMS = {"fbclid", "gclid", "mc_cid", "mc_eid", "ref", "ref_src", "cmpid", "_hsenc", "_hsmi"}


def strip_html(value: str) -> str:
    text = str(value or "")
    text = _SCRIPT_RE.sub(" ", text)
    text = _STYLE_RE.sub(" ", text)
    text = _HTML_TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def decode_entities(value: str) -> str:
    return html_lib.unescape(str(value or "")).strip()


def truncate(text: str, max_len: int, *, ellipsis: str = "") -> str:
    value = str(text or "").strip()
    if len(value) <= max_len:
        return value
    return value[:max_len].rstrip() + ellipsis


def excerpt(text: str, max_len: int = 300) -> str:
    """Short teaser; always ends with an ellipsis when non-empty."""
    value = str(text or "").strip()
    if not value:
        return ""
    return value[:max_len].strip() + "..."


def canonicalize_url(url: str) -> str:
    """Stable dedup key for a permanent locator.

    Lower-cases scheme and host, drops ``www.``, default ports, fragments,
    ``utm_*`` and other tracking parameters, and a trailing slash.
    """
    value = re.sub(r"\s+", "", str(url or "").strip())
    if not value:
        return ""
    if not value.lower().startswith(("http://", "https://")):
        return value

    try:
        parsed = urlparse(value)
    except ValueError:
        return value

    host = str(parsed.netloc or "").strip().lower()
    if host.endswith(":80"):
        host = host[:-3]
    elif host.endswith(":443"):
        host = host[:-4]
    if host.startswith("www."):
        host = host[4:]

    path = re.sub(r"/{2,}", "/", str(parsed.path or ""))
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    query_pairs = []
    for key, val in parse_qsl(str(parsed.query or ""), keep_blank_values=False):
        key_clean = str(key or "").strip()
        if key_clean.lower().startswith("utm_") or key_clean.lower() in _TRACKING_PARAMS:
            continue
        query_pairs.append((key_clean, str(val or "").strip()))
    query = urlencode(query_pairs, doseq=False)

    return urlunparse(("https", host, path or "/", "", query, ""))
