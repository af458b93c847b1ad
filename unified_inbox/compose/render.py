"""Body rendering for outgoing mail — markdown to email-safe HTML, HTML to plain text."""

import re
from html.parser import HTMLParser

import markdown

# ── HTML stripper ───────────────────────────────────────────────────────────────


class _HTMLStripper(HTMLParser):
    """HTMLParser subclass that collects visible text nodes."""

    _INVISIBLE = {"script", "style", "head", "title"}

    def __init__(self) -> None:
        super().__init__()
        self._parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in self._INVISIBLE:
            self._skip_depth += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in self._INVISIBLE and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._parts.append(data)

    def get_text(self) -> str:
        # collapse all runs of whitespace, including those between tags
        return " ".join(" ".join(self._parts).split())


def html_to_text(html: str) -> str:
    """Return the visible text of an HTML document with whitespace collapsed."""
    stripper = _HTMLStripper()
    stripper.feed(html)
    stripper.close()
    return stripper.get_text()


# ── Markdown ────────────────────────────────────────────────────────────────────

#: Inline styles per tag. Most mail clients drop <link> and many drop <style>,
#: so every rule has to live on the element itself.
_INLINE_STYLES: dict[str, str] = {
    "h1": "font-size:24px;font-weight:600;margin:24px 0 12px;color:#1a1a1a;",
    "h2": "font-size:20px;font-weight:600;margin:20px 0 10px;color:#1a1a1a;",
    "h3": "font-size:17px;font-weight:600;margin:16px 0 8px;color:#1a1a1a;",
    "h4": "font-size:15px;font-weight:600;margin:14px 0 6px;color:#1a1a1a;",
    "p": "margin:0 0 12px;",
    "a": "color:#0b57d0;text-decoration:underline;",
    "ul": "margin:0 0 12px;padding-left:24px;",
    "ol": "margin:0 0 12px;padding-left:24px;",
    "li": "margin:0 0 4px;",
    "blockquote": "margin:0 0 12px;padding:4px 12px;border-left:4px solid #d0d7de;color:#57606a;",
    "pre": "background:#f6f8fa;border-radius:6px;padding:12px;overflow:auto;"
           "font-family:Menlo,Consolas,monospace;font-size:13px;line-height:1.45;",
    "code": "background:#f6f8fa;border-radius:3px;padding:1px 4px;"
            "font-family:Menlo,Consolas,monospace;font-size:13px;",
    "table": "border-collapse:collapse;margin:0 0 12px;",
    "th": "border:1px solid #d0d7de;padding:6px 12px;background:#f6f8fa;font-weight:600;text-align:left;",
    "td": "border:1px solid #d0d7de;padding:6px 12px;",
    "hr": "border:none;border-top:1px solid #d0d7de;margin:20px 0;",
    "img": "max-width:100%;",
}

_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin:0;padding:0;background:#ffffff;">
<div style="max-width:680px;margin:0 auto;padding:16px;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Helvetica,Arial,sans-serif;font-size:15px;line-height:1.6;color:#1f2328;">
{content}
</div>
</body>
</html>"""

_TAG_RE = re.compile(r"<(" + "|".join(_INLINE_STYLES) + r")\b([^>]*)>")
_PRE_CODE_RE = re.compile(r'(<pre\b[^>]*>)<code style="[^"]*"')


def _style_tag(match: re.Match[str]) -> str:
    tag, attrs = match.group(1), match.group(2)
    style = _INLINE_STYLES[tag]
    if "style=" in attrs:
        # merge with e.g. the table extension's text-align
        attrs = re.sub(r'style="([^"]*)"', lambda m: f'style="{style}{m.group(1)}"', attrs, count=1)
        return f"<{tag}{attrs}>"
    return f'<{tag} style="{style}"{attrs}>'


def apply_inline_styles(html: str) -> str:
    """Add the email-safe inline style to every known tag."""
    styled = _TAG_RE.sub(_style_tag, html)
    # code inside a pre block inherits the pre background
    return _PRE_CODE_RE.sub(r'\1<code style="font-family:Menlo,Consolas,monospace;"', styled)


def markdown_to_html(text: str) -> str:
    """Render markdown to a complete, inline-styled HTML email document."""
    body = markdown.markdown(text, extensions=["extra", "sane_lists"])
    return _EMAIL_TEMPLATE.format(content=apply_inline_styles(body))
