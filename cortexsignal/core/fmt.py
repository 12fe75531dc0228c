from __future__ import annotations


def safe_html(text: str) -> str:
    """Escape special HTML characters so dynamic content is safe in HTML parse_mode."""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
