"""
Modelos SQLAlchemy. Importar aquí para que Alembic los detecte en autogenerate.
"""

from models.token import Token
from models.volume_history import TopVolumeHistory, TradingVolumeHistory

__all__ = [
    "Token",
    "TopVolumeHistory",
    "TradingVolumeHistory",
]
