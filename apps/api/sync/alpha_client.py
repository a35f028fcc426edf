"""
Cliente HTTP para la API pública de Binance Alpha.

Reglas:
- Endpoints públicos, sin firma. Binance rechaza clientes sin User-Agent de navegador.
- Resolver symbol → alphaId con la lista de tokens (comparación sin mayúsculas).
- Klines diarias con limit=2: fila [0] = ayer, fila [1] = hoy.
  Volumen = quoteAssetVolume (índice 7, en USDT); precio = close (índice 4).
- Backoff exponencial en 429 y errores de red.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog
from fastapi import status

from core.config import settings
from core.exceptions import UpstreamFetchError
from services.reconciliation import FetchedVolume

logger = structlog.get_logger(__name__)

TOKEN_LIST_PATH = "/bapi/defi/v1/public/wallet-direct/buw/wallet/cex/alpha/all/token/list"
KLINES_PATH = "/bapi/defi/v1/public/alpha-trade/klines"
QUOTE_ASSET = "USDT"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Índices de una fila de kline
_CLOSE = 4
_QUOTE_VOLUME = 7


# ---------------------------------------------------------------------------
# Excepciones
# ---------------------------------------------------------------------------


class AlphaAPIError(UpstreamFetchError):
    def __init__(self, upstream_status: int, msg: str) -> None:
        self.upstream_status = upstream_status
        super().__init__(f"Binance Alpha error: {msg} (HTTP {upstream_status})")


class AlphaTokenNotFoundError(UpstreamFetchError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(
            f"No alphaId found for token symbol: {symbol}. "
            "Please check if the token symbol is correct and exists in Binance Alpha."
        )


class AlphaNoDataError(UpstreamFetchError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, symbol: str, alpha_id: str) -> None:
        self.symbol = symbol
        self.alpha_id = alpha_id
        super().__init__(
            f"No kline data available for {symbol} ({alpha_id}). "
            "This token might not be actively traded."
        )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _to_decimal(raw: Any) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None


def parse_klines(rows: list[list]) -> FetchedVolume | None:
    """
    Convierte las klines (orden cronológico) en la ventana de 2 días.
    Con una sola fila solo hay dato de ayer: volumen y precio de hoy quedan a None.
    """
    if not rows:
        return None

    yesterday = rows[0]
    today = rows[1] if len(rows) > 1 else None
    return FetchedVolume(
        volume_today=_to_decimal(today[_QUOTE_VOLUME]) if today else None,
        volume_yesterday=_to_decimal(yesterday[_QUOTE_VOLUME]),
        price=_to_decimal(today[_CLOSE]) if today else None,
    )


@dataclass(frozen=True)
class VolumeSnapshot:
    """Resultado del proxy GET /api/volume/{symbol}."""

    volume: FetchedVolume
    symbol: str          # par consultado, p.ej. "ALPHA_175USDT"
    raw: dict


# ---------------------------------------------------------------------------
# Cliente principal
# ---------------------------------------------------------------------------


class BinanceAlphaClient:
    """
    Cliente asíncrono para Binance Alpha.

    Uso:
        async with BinanceAlphaClient() as client:
            fetched = await client.fetch_volume("KOGE")

    El http_client es inyectable para facilitar tests unitarios.
    La lista de tokens se cachea por instancia: un batch diario hace una sola
    descarga para todos los tokens.
    """

    MAX_RETRIES: int = 3
    BASE_BACKOFF: float = 2.0  # segundos

    def __init__(
        self,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.BINANCE_ALPHA_BASE_URL).rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout or settings.FETCH_TIMEOUT_SECONDS),
            headers={"User-Agent": BROWSER_USER_AGENT},
        )
        self._token_list: list[dict] | None = None

    async def __aenter__(self) -> "BinanceAlphaClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # Request base con retry
    # -----------------------------------------------------------------------

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> dict:
        last_exc: Exception | None = None

        for attempt in range(self.MAX_RETRIES):
            try:
                response = await self._client.get(path, params=params)

                if response.status_code == 429:
                    backoff = self.BASE_BACKOFF ** (attempt + 1)
                    logger.warning("alpha.rate_limit_hit", path=path, attempt=attempt, backoff=backoff)
                    if attempt < self.MAX_RETRIES - 1:
                        await asyncio.sleep(backoff)
                        continue
                    raise AlphaAPIError(429, "Rate limit exceeded")

                if response.status_code >= 400:
                    raise AlphaAPIError(response.status_code, response.reason_phrase or "HTTP error")

                return response.json()

            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                backoff = self.BASE_BACKOFF ** (attempt + 1)
                logger.warning(
                    "alpha.network_error",
                    path=path,
                    attempt=attempt,
                    backoff=backoff,
                    error=str(exc),
                )
                last_exc = exc
                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(backoff)

        raise AlphaAPIError(503, f"Max retries exceeded for {path}") from last_exc

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    async def get_token_list(self) -> list[dict]:
        """Lista de tokens Alpha (symbol, name, alphaId...). Cacheada por instancia."""
        if self._token_list is None:
            payload = await self._request(TOKEN_LIST_PATH)
            if not payload.get("success") or not payload.get("data"):
                logger.warning("alpha.token_list_empty", success=payload.get("success"))
                return []
            self._token_list = payload["data"]
            logger.debug("alpha.token_list_loaded", count=len(self._token_list))
        return self._token_list

    async def get_alpha_id(self, symbol: str) -> str | None:
        wanted = symbol.strip().upper()
        for item in await self.get_token_list():
            if (item.get("symbol") or "").upper() == wanted and item.get("alphaId"):
                return item["alphaId"]
        logger.info("alpha.alpha_id_not_found", symbol=symbol)
        return None

    async def get_klines(self, alpha_id: str, limit: int = 2) -> dict:
        """GET klines diarias del par {alphaId}USDT. Devuelve el payload completo."""
        return await self._request(
            KLINES_PATH,
            params={"interval": "1d", "limit": limit, "symbol": f"{alpha_id}{QUOTE_ASSET}"},
        )

    async def get_volume_snapshot(self, symbol: str) -> VolumeSnapshot:
        """
        Versión estricta para el proxy: lanza AlphaTokenNotFoundError o
        AlphaNoDataError (404) en lugar de devolver None.
        """
        alpha_id = await self.get_alpha_id(symbol)
        if alpha_id is None:
            raise AlphaTokenNotFoundError(symbol)

        payload = await self.get_klines(alpha_id)
        rows = payload.get("data") if payload.get("success") else None
        fetched = parse_klines(rows or [])
        if fetched is None:
            raise AlphaNoDataError(symbol, alpha_id)

        logger.info(
            "alpha.volume_fetched",
            symbol=symbol,
            alpha_id=alpha_id,
            volume_today=str(fetched.volume_today),
            volume_yesterday=str(fetched.volume_yesterday),
        )
        return VolumeSnapshot(volume=fetched, symbol=f"{alpha_id}{QUOTE_ASSET}", raw=payload)

    async def fetch_volume(self, symbol: str) -> FetchedVolume | None:
        """
        Versión tolerante para el batch: None si el token no existe en Alpha o
        no tiene klines. Los errores de red/HTTP se propagan al llamante.
        """
        try:
            snapshot = await self.get_volume_snapshot(symbol)
        except (AlphaTokenNotFoundError, AlphaNoDataError) as exc:
            logger.info("alpha.no_volume", symbol=symbol, reason=exc.message)
            return None
        return snapshot.volume
