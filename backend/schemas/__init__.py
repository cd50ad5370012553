from .auth import AuthUserResponse, LoginRequest, MessageResponse, RegisterRequest, UserPublic
from .history import (
    Pagination,
    TextRevisionCreate,
    TextRevisionResponse,
    TextRevisionUpdate,
    TextSessionCreate,
    TextSessionResponse,
    TextSessionUpdate,
)
from .transform import LanguageResponse, LanguagesResponse, SelectionTransformBody, TransformRequestBody

__all__ = [
    # Auth
    "AuthUserResponse",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "UserPublic",
    # History
    "Pagination",
    "TextRevisionCreate",
    "TextRevisionResponse",
    "TextRevisionUpdate",
    "TextSessionCreate",
    "TextSessionResponse",
    "TextSessionUpdate",
    # Transform
    "LanguageResponse",
    "LanguagesResponse",
    "SelectionTransformBody",
    "TransformRequestBody",
]
