from typing import Dict, Optional

from fastapi import status


class LendingError(Exception):
    """
    APIの境界でHTTPレスポンスに変換されるアプリケーション例外の基底クラス。

    Attributes
    ----------
    status_code : int
        レスポンスとして返すHTTPステータスコード。
    message : str
        レスポンスボディの ``message`` に入るメッセージ。
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(LendingError):
    default_message = "Invalid input"


class DuplicateError(LendingError):
    default_message = "Username already taken"


class InvalidId(LendingError):
    default_message = "Invalid ID format"


class ConflictError(LendingError):
    default_message = "Conflicting state"


class NotFound(LendingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Unauthenticated(LendingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class InvalidToken(Unauthenticated):
    default_message = "Invalid or expired token"


class InvalidCredentials(Unauthenticated):
    default_message = "Invalid credentials"


class Forbidden(LendingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden: Insufficient role"


class InternalError(LendingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
