import re
from typing import Optional


_SUSPICIOUS_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"traceback", re.IGNORECASE),
    re.compile(r"\bfile\s+\".*?\.py\"", re.IGNORECASE),
    re.compile(r"sqlalchemy", re.IGNORECASE),
    re.compile(r"sqlite3|asyncpg|aiosqlite", re.IGNORECASE),
    re.compile(r"\b(operational|integrity|programming)error\b", re.IGNORECASE),
    re.compile(r"\[sql:", re.IGNORECASE),
    re.compile(r"\$2[aby]\$\d{2}\$"),  # bcrypt hash
    re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+"),  # JWT
    re.compile(r"/home/|/users/|/root/|[a-z]:\\", re.IGNORECASE),
)


def sanitize_public_error_message(
    message: Optional[str],
    *,
    fallback: str = "Internal error",
    max_chars: int = 240,
) -> Optional[str]:
    """
    Clean an exception message before it is put in a response body.

    The text is untrusted: ``str(exc)`` may contain SQL, file paths, token
    material or password hashes. Anything that looks like that collapses to
    ``fallback``.
    """
    if not message:
        return None

    safe = message.encode("utf-8", errors="replace").decode("utf-8", errors="replace")
    safe = re.sub(r"\s+", " ", safe).strip()
    if not safe:
        return None

    if any(p.search(safe) for p in _SUSPICIOUS_ERROR_PATTERNS):
        return fallback

    if len(safe) > max_chars:
        return f"{safe[:max_chars]}..."
    return safe
