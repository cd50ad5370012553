from .auth_session import AuthSession
from .generation_usage import GenerationUsage
from .text_session import TextRevision, TextSession
from .user import User

__all__ = [
    "AuthSession",
    "GenerationUsage",
    "TextRevision",
    "TextSession",
    "User",
]
