"""
Router: /api/volume
GET /{symbol} → volúmenes de hoy/ayer y precio en vivo desde Binance Alpha.

No escribe nada: el panel de admin lo usa para previsualizar antes de
guardar con PUT /api/tokens/{id}/volume.
"""

from fastapi import APIRouter, Depends

from core.dependencies import get_alpha_client
from core.responses import ok
from schemas.token import VolumeSnapshotOut
from sync.alpha_client import BinanceAlphaClient

router = APIRouter()


@router.get("/{symbol}")
async def get_live_volume(
    symbol: str,
    client: BinanceAlphaClient = Depends(get_alpha_client),
) -> dict:
    """404 si el símbolo no existe en Binance Alpha o no tiene klines."""
    snapshot = await client.get_volume_snapshot(symbol)
    volume = snapshot.volume
    return ok(
        data=VolumeSnapshotOut(
            volume_today=float(volume.volume_today) if volume.volume_today is not None else None,
            volume_yesterday=float(volume.volume_yesterday) if volume.volume_yesterday is not None else None,
            price=float(volume.price) if volume.price is not None else None,
            symbol=snapshot.symbol,
            raw_data=snapshot.raw,
        )
    )
