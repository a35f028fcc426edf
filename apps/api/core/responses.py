"""
Helpers para la estructura de respuesta estándar { data, error, meta }.
Todos los endpoints de la API deben usar estas funciones para garantizar
coherencia en el formato de respuesta.
"""

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel


def dump(data: Any) -> Any:
    """
    Serializa modelos pydantic (o listas de ellos) con sus alias camelCase,
    que es lo que consume el frontend. Otros valores se devuelven tal cual.
    """
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, Iterable) and not isinstance(data, (str, bytes, dict)):
        return [dump(item) for item in data]
    return data


def ok(data: Any = None, meta: dict | None = None) -> dict:
    """Respuesta exitosa."""
    return {"data": dump(data), "error": None, "meta": meta or {}}


def err(message: str, meta: dict | None = None) -> dict:
    """Respuesta de error (para exception handlers globales)."""
    return {"data": None, "error": message, "meta": meta or {}}
