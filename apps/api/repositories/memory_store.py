"""
Store en memoria con la misma semántica que SqlTokenStore.

Se usa en tests y en desarrollo sin base de datos. Las mutaciones se
serializan con un asyncio.Lock y solo se publican si la función de
reconciliación termina sin errores (todo o nada).
"""

import asyncio
import itertools
from dataclasses import replace

from core.exceptions import TokenConflictError, TokenNotFoundError
from repositories.token_store import Mutation
from services.reconciliation import (
    TOP_VOLUME,
    TRADING_VOLUME,
    HistoryEntry,
    Reconciliation,
    TokenState,
)


class InMemoryTokenStore:
    def __init__(self) -> None:
        self._tokens: dict[int, TokenState] = {}
        self._history: dict[tuple[int, str], list[HistoryEntry]] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def list_tokens(self) -> list[TokenState]:
        return sorted(
            self._tokens.values(),
            key=lambda t: (t.created_at is not None, t.created_at, t.id),
            reverse=True,
        )

    async def get_token(self, token_id: int) -> TokenState | None:
        return self._tokens.get(token_id)

    async def create_token(self, seed: Reconciliation) -> Reconciliation:
        async with self._lock:
            self._check_unique(seed.token)
            token = replace(seed.token, id=next(self._ids))
            self._tokens[token.id] = token
            for kind in (TOP_VOLUME, TRADING_VOLUME):
                self._history[(token.id, kind)] = []
            self._append(token.id, seed.entries)
            return Reconciliation(token=token, entries=list(seed.entries))

    async def mutate(self, token_id: int, mutation: Mutation) -> Reconciliation:
        async with self._lock:
            current = self._tokens.get(token_id)
            if current is None:
                raise TokenNotFoundError(token_id)

            result = mutation(current)
            token = replace(result.token, id=token_id)
            self._check_unique(token, exclude_id=token_id)

            self._tokens[token_id] = token
            self._append(token_id, result.entries)
            return Reconciliation(token=token, entries=list(result.entries))

    async def delete_token(self, token_id: int) -> TokenState:
        async with self._lock:
            token = self._tokens.pop(token_id, None)
            if token is None:
                raise TokenNotFoundError(token_id)
            for kind in (TOP_VOLUME, TRADING_VOLUME):
                self._history.pop((token_id, kind), None)
            return token

    async def list_history(self, token_id: int, kind: str) -> list[HistoryEntry]:
        # Copia: quien lee no puede alterar el log
        return list(self._history.get((token_id, kind), []))

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _append(self, token_id: int, entries: list[HistoryEntry]) -> None:
        for entry in entries:
            self._history.setdefault((token_id, entry.kind), []).append(entry)

    def _check_unique(self, token: TokenState, exclude_id: int | None = None) -> None:
        """Equivalente a las constraints UNIQUE(name) y UNIQUE(lower(slug))."""
        for other in self._tokens.values():
            if other.id == exclude_id:
                continue
            if other.name == token.name or other.slug.lower() == token.slug.lower():
                raise TokenConflictError("Token with this name or slug already exists")
