"""
Cookie handling for yt-dlp.

Users paste either a browser-extension JSON export (a list of cookie
objects) or a Netscape cookies.txt. yt-dlp only reads the latter, so
JSON is converted before being written next to the job's downloads.
"""

import json
import os
from pathlib import Path
from typing import Optional

from errors import CredentialConversionError

COOKIE_FILENAME = "cookies.txt"
_NETSCAPE_HEADER = "# Netscape HTTP Cookie File\n"


def json_to_netscape(raw: str) -> str:
    """
    Convert a JSON cookie export into Netscape cookie-file text.

    Raises CredentialConversionError if *raw* is not a JSON list of objects.
    """
    try:
        cookies = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CredentialConversionError(f"invalid cookie JSON: {exc}") from exc
    if not isinstance(cookies, list):
        raise CredentialConversionError("cookie JSON must be a list")

    lines = [_NETSCAPE_HEADER]
    for cookie in cookies:
        if not isinstance(cookie, dict):
            raise CredentialConversionError("cookie entries must be objects")
        domain = str(cookie.get("domain", ""))
        include_subdomains = "TRUE" if domain.startswith(".") else "FALSE"
        secure = "TRUE" if cookie.get("secure") else "FALSE"
        try:
            expiry = int(float(cookie.get("expirationDate") or 0) + 0.5)
        except (TypeError, ValueError) as exc:
            raise CredentialConversionError(f"invalid cookie expiry: {exc}") from exc
        lines.append(
            "\t".join([
                domain,
                include_subdomains,
                str(cookie.get("path", "")),
                secure,
                str(expiry),
                str(cookie.get("name", "")),
                str(cookie.get("value", "")),
            ]) + "\n"
        )
    return "".join(lines)


def to_cookie_file_text(raw: str) -> str:
    """JSON exports are converted; anything else is assumed to be Netscape already."""
    if raw.strip().startswith("["):
        return json_to_netscape(raw)
    return raw


def write_cookie_file(raw: Optional[str], work_dir: str) -> Optional[str]:
    """
    Write *raw* cookies into *work_dir* and return the file path.

    Returns None when no cookies were supplied.
    """
    if not raw or not raw.strip():
        return None

    text = to_cookie_file_text(raw)
    path = Path(work_dir) / COOKIE_FILENAME
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(text)
    return str(path)
