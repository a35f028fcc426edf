"""
Capa de seguridad: contraseña compartida de administración.

Las operaciones de escritura reciben `adminPassword` en el body JSON y se
comparan contra ADMIN_PASSWORD con secrets.compare_digest (timing-safe).

NUNCA loguear ni exponer ADMIN_PASSWORD ni el valor recibido.
"""

import secrets

from core.config import settings
from core.exceptions import UnauthorizedError


def verify_admin_password(plain: str | None) -> bool:
    """Compara la contraseña enviada contra ADMIN_PASSWORD sin filtrar tiempos."""
    if not plain:
        return False
    return secrets.compare_digest(plain.encode("utf-8"), settings.ADMIN_PASSWORD.encode("utf-8"))


def require_admin(plain: str | None) -> None:
    """Lanza UnauthorizedError (401) si la contraseña no es válida."""
    if not verify_admin_password(plain):
        raise UnauthorizedError()
