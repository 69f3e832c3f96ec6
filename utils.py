# utils.py
import re
from urllib.parse import urlsplit, urlunsplit


def format_duration(total_seconds):
    """
    Render a number of seconds as a readable duration.

    Examples:
        90    -> "1 minute 30 seconds"
        3600  -> "1 hour"
        3725  -> "1 hour 2 minutes 5 seconds"
        0     -> "0 seconds"
    """
    total_seconds = int(round(total_seconds))
    if total_seconds <= 0:
        return "0 seconds"

    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    for value, unit in ((hours, "hour"), (minutes, "minute"), (seconds, "second")):
        if value:
            parts.append(f"{value} {unit}{'' if value == 1 else 's'}")
    return " ".join(parts)


def embed_token_in_url(remote_url, token):
    """
    Return an https remote URL carrying the access token as credentials.

    Non-http(s) URLs (ssh, local paths) and empty tokens are returned unchanged.
    """
    if not token or not remote_url:
        return remote_url
    parts = urlsplit(remote_url)
    if parts.scheme not in ("http", "https"):
        return remote_url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"x-access-token:{token}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact_url(text, token=None):
    """Hide credentials embedded in URLs (and the raw token, if given) before logging."""
    if not text:
        return text
    redacted = re.sub(r'(https?://)[^/@\s]+@', r'\1***@', text)
    if token:
        redacted = redacted.replace(token, "***")
    return redacted


def sanitize_player_name(name):
    """
    Clean a player name read from a profile file.

    Collapses whitespace and strips separators; returns an empty string
    when nothing usable is left.
    """
    if not isinstance(name, str):
        return ""
    cleaned = re.sub(r"\s+", " ", name)
    return cleaned.strip(" .-_/\\:;")
