"""MIME composer — builds raw RFC 2045/2046 messages for the Gmail send endpoint.

Structure by case:

    plain, no attachments     text/plain (single part, no boundary)
    html/markdown, none       multipart/alternative (text/plain, text/html)
    any, with attachments     multipart/mixed (body, attachment, attachment, ...)
                              where body is text/plain or the alternative above
"""

import base64
import quopri
import re
import secrets
import time

from unified_inbox.compose.render import html_to_text, markdown_to_html
from unified_inbox.gmail.types import Attachment, ComposedEmail, ComposeRequest, EmailFormat

CRLF = "\r\n"

# RFC 2045 §6.8: encoded lines must not exceed 76 characters
BASE64_LINE_LENGTH = 76

# RFC 5322 §2.1.1: hard limit per line, excluding the CRLF
MAX_LINE_LENGTH = 998
FOLD_LENGTH = 78

# 39 bytes -> 52 base64 chars, so an encoded-word plus "Subject: " stays under 76
ENCODED_WORD_BYTES = 39

_ANGLE_ADDR_RE = re.compile(r"<([^>]+)>")
_LINE_BREAK_RE = re.compile(r"[\r\n]+")


def compose(request: ComposeRequest) -> ComposedEmail:
    """Turn a send request into a complete MIME document plus its base64url form."""
    plain, html = _render_bodies(request.body, request.format)
    lines = _envelope_headers(request)
    boundaries: list[str] = []

    if request.attachments:
        mixed = _new_boundary("mixed")
        boundaries.append(mixed)
        lines.append(f'Content-Type: multipart/mixed; boundary="{mixed}"')
        lines.append("")
        lines.append(f"--{mixed}")
        if html is None:
            lines.extend(_text_part("plain", plain))
        else:
            alternative = _new_boundary("alt")
            boundaries.append(alternative)
            lines.extend(_alternative_part(alternative, plain, html))
        for attachment in request.attachments:
            lines.append(f"--{mixed}")
            lines.extend(_attachment_part(attachment))
        lines.append(f"--{mixed}--")
    elif html is not None:
        alternative = _new_boundary("alt")
        boundaries.append(alternative)
        lines.extend(_alternative_part(alternative, plain, html))
    else:
        lines.extend(_text_part("plain", plain))

    document = CRLF.join(lines)
    raw = base64.urlsafe_b64encode(document.encode("utf-8")).decode("ascii")
    return ComposedEmail(document=document, raw=raw, boundaries=tuple(boundaries))


def reply_address(from_header: str) -> str:
    """Return the bare address from ``Name <addr>``, or the header itself if there are no brackets."""
    match = _ANGLE_ADDR_RE.search(from_header)
    return match.group(1).strip() if match else from_header.strip()


def reply_subject(subject: str) -> str:
    """Prefix ``Re: `` unless the subject already carries it."""
    return subject if subject[:3].lower() == "re:" else f"Re: {subject}"


# ── Bodies ──────────────────────────────────────────────────────────────────────


def _render_bodies(body: str, fmt: EmailFormat) -> tuple[str, str | None]:
    """Return (plain_text, html_or_None) for the requested format."""
    if fmt == EmailFormat.MARKDOWN:
        return body, markdown_to_html(body)
    if fmt == EmailFormat.HTML:
        return html_to_text(body), body
    return body, None


# ── Headers ─────────────────────────────────────────────────────────────────────


def _envelope_headers(request: ComposeRequest) -> list[str]:
    headers = ["MIME-Version: 1.0"]
    headers.extend(_address_header("To", request.to))
    if request.cc:
        headers.extend(_address_header("Cc", request.cc))
    if request.bcc:
        headers.extend(_address_header("Bcc", request.bcc))
    headers.extend(_subject_header(_single_line(request.subject)))
    if request.in_reply_to:
        message_id = _single_line(request.in_reply_to)
        headers.append(f"In-Reply-To: {message_id}")
        headers.append(f"References: {message_id}")
    return headers


def _single_line(value: str) -> str:
    """Collapse every CR/LF run to one space so a value can't start a new header."""
    return _LINE_BREAK_RE.sub(" ", value).strip()


def _address_header(name: str, addresses: list[str]) -> list[str]:
    """``Name: a, b, ...`` folded onto continuation lines of about 78 characters.

    Raises:
        ValueError: if an address contains a line break.
    """
    for address in addresses:
        if _LINE_BREAK_RE.search(address):
            raise ValueError(f"{name} address contains a line break: {address!r}")
    if not addresses:
        return [f"{name}: "]

    lines: list[str] = []
    current = f"{name}: {addresses[0].strip()}"
    for address in addresses[1:]:
        address = address.strip()
        # ", " now or "," if this line ends here
        if len(current) + len(address) + 3 > FOLD_LENGTH:
            lines.append(current + ",")
            current = f" {address}"
        else:
            current = f"{current}, {address}"
    lines.append(current)
    return lines


def _subject_header(subject: str) -> list[str]:
    """Plain ASCII when it fits on one line, otherwise RFC 2047 encoded-words.

    Each encoded-word carries at most ``ENCODED_WORD_BYTES`` of UTF-8, split on
    character boundaries, and sits on its own folded line.
    """
    if subject.isascii() and len("Subject: ") + len(subject) <= MAX_LINE_LENGTH:
        return [f"Subject: {subject}"]

    words: list[str] = []
    chunk = b""
    for char in subject:
        encoded = char.encode("utf-8")
        if chunk and len(chunk) + len(encoded) > ENCODED_WORD_BYTES:
            words.append(_encoded_word(chunk))
            chunk = b""
        chunk += encoded
    words.append(_encoded_word(chunk))
    return [f"Subject: {words[0]}", *(f" {word}" for word in words[1:])]


def _encoded_word(data: bytes) -> str:
    return f"=?UTF-8?B?{base64.b64encode(data).decode('ascii')}?="


def _new_boundary(kind: str) -> str:
    """Unique per call: nanosecond timestamp plus 64 random bits, prefixed by part kind."""
    return f"=_{kind}_{time.time_ns():x}_{secrets.token_hex(8)}"


# ── Parts ───────────────────────────────────────────────────────────────────────


def _text_part(subtype: str, text: str) -> list[str]:
    """``7bit`` for short-lined ASCII, ``quoted-printable`` for anything else."""
    lines = _normalize_newlines(text)
    header = f"Content-Type: text/{subtype}; charset=utf-8"
    if text.isascii() and all(len(line) <= MAX_LINE_LENGTH for line in lines):
        return [header, "Content-Transfer-Encoding: 7bit", "", *lines]

    encoded = quopri.encodestring("\n".join(lines).encode("utf-8")).decode("ascii")
    return [header, "Content-Transfer-Encoding: quoted-printable", "", *encoded.split("\n")]


def _alternative_part(boundary: str, plain: str, html: str) -> list[str]:
    # Clients render the last part they understand, so HTML goes last.
    return [
        f'Content-Type: multipart/alternative; boundary="{boundary}"',
        "",
        f"--{boundary}",
        *_text_part("plain", plain),
        f"--{boundary}",
        *_text_part("html", html),
        f"--{boundary}--",
    ]


def _attachment_part(attachment: Attachment) -> list[str]:
    filename = _single_line(attachment.filename).replace('"', "")
    return [
        f'Content-Type: {_single_line(attachment.mime_type)}; name="{filename}"',
        "Content-Transfer-Encoding: base64",
        f'Content-Disposition: attachment; filename="{filename}"',
        "",
        *_wrap_base64(attachment.content),
    ]


def _wrap_base64(content: str) -> list[str]:
    """Hard-wrap base64 data at 76 characters, discarding any existing line breaks."""
    data = "".join(content.split())
    return [data[i:i + BASE64_LINE_LENGTH] for i in range(0, len(data), BASE64_LINE_LENGTH)]


def _normalize_newlines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
