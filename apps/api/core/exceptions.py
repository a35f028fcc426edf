"""
Excepciones de dominio.

Los servicios y el motor de reconciliación lanzan estas excepciones; los
exception handlers globales de main.py las traducen a HTTP manteniendo el
formato { data, error, meta }.
"""

from fastapi import status


class TokenLeaderboardError(Exception):
    """Base de todos los errores de dominio."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TokenNotFoundError(TokenLeaderboardError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, token_id: int) -> None:
        self.token_id = token_id
        super().__init__("Token not found")


class UnauthorizedError(TokenLeaderboardError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized: Invalid admin password") -> None:
        super().__init__(message)


class TokenConflictError(TokenLeaderboardError):
    """Nombre o slug duplicado al crear/renombrar un token."""

    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(TokenLeaderboardError):
    """Operación no permitida en el estado actual del token (p.ej. archivado)."""

    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamFetchError(TokenLeaderboardError):
    """La API de mercado falló o no devolvió datos utilizables."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PersistenceError(TokenLeaderboardError):
    """
    La escritura en el store falló. La operación se considera NO aplicada:
    el llamante debe asumir que no hubo ningún cambio.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
