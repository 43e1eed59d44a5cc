from typing import Any, Dict, List, Optional

import httpx

from core.config.settings import BackendSettings
from core.logging import get_api_logger_safe, get_error_logger_safe
from core.schemas.events import PersistenceAction
from core.schemas.market import WatchlistEntry
from core.trading.portfolio_models import Position
from core.utils.exceptions import (
    BackendAPIError,
    BackendConnectionError,
    BackendError,
    PersistenceError,
    create_error_context,
)

from .models import OrderResult, SymbolSearchResult, TradeOrder, TradeRecord
from .parsers import (
    parse_order_result,
    parse_positions,
    parse_search_results,
    parse_trade_history,
    parse_watchlist,
)


class BackendClient:
    """
    Async client for the market backend REST API.

    Transport failures raise BackendConnectionError, error statuses and
    non-JSON bodies raise BackendAPIError. Response bodies are normalized by
    ``parsers`` before they leave this class.
    """

    def __init__(self, settings: BackendSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.logger = get_api_logger_safe("backend")
        self.error_logger = get_error_logger_safe("backend_errors")

    async def start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                timeout=self.settings.request_timeout_seconds,
                transport=self._transport,
            )

    async def stop(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackendClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # --- Watchlist ---

    async def fetch_watchlist(self, user_id: str) -> List[WatchlistEntry]:
        payload = await self._request("GET", f"/watchlist/{user_id}")
        entries = parse_watchlist(payload)
        self.logger.debug("Fetched watchlist", user_id=user_id, entries=len(entries))
        return entries

    async def persist_add(self, user_id: str, ws_id: str, instrument_id: str) -> None:
        await self._persist(PersistenceAction.ADD, user_id, ws_id, instrument_id)

    async def persist_remove(self, user_id: str, ws_id: str, instrument_id: str) -> None:
        await self._persist(PersistenceAction.REMOVE, user_id, ws_id, instrument_id)

    async def search_symbols(self, query: str) -> List[SymbolSearchResult]:
        query = query.strip()
        if not query:
            return []
        payload = await self._request("GET", "/search-symbol", params={"q": query})
        return parse_search_results(payload)

    # --- Trading ---

    async def fetch_positions(self, user_id: str) -> List[Position]:
        payload = await self._request("GET", f"/trade/positions/{user_id}")
        positions = parse_positions(payload)
        self.logger.debug("Fetched positions", user_id=user_id, positions=len(positions))
        return positions

    async def place_order(self, order: TradeOrder) -> OrderResult:
        payload = await self._request("POST", "/trade/place_order", json=order.model_dump(mode="json"))
        result = parse_order_result(payload)
        self.logger.info(
            "Order placed" if result.success else "Order rejected",
            token=order.token,
            order_type=order.order_type.value,
            quantity=order.quantity,
            message=result.message,
        )
        return result

    async def fetch_trade_history(self, user_id: str) -> List[TradeRecord]:
        payload = await self._request("GET", f"/trade/history/{user_id}")
        return parse_trade_history(payload)

    # --- Internals ---

    async def _persist(self, action: PersistenceAction, user_id: str, ws_id: str, instrument_id: str) -> None:
        endpoint = f"/watchlist/{action.value}"
        try:
            await self._request(
                "POST",
                endpoint,
                params={"user_id": user_id, "ws_id": ws_id, "token": instrument_id},
            )
        except BackendError as e:
            raise PersistenceError(
                f"Watchlist {action.value} failed for {instrument_id}: {e}",
                endpoint=endpoint,
                instrument_id=instrument_id,
                action=action.value,
            ) from e
        self.logger.info("Watchlist change persisted", action=action.value, instrument_id=instrument_id)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        await self.start()
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.RequestError as e:
            error = BackendConnectionError(f"{method} {path} failed: {e}", endpoint=path)
            self.error_logger.error("Backend unreachable", **create_error_context(error, "backend_request"))
            raise error from e

        if response.is_error:
            raise BackendAPIError(
                f"{method} {path} returned {response.status_code}",
                endpoint=path,
                status_code=response.status_code,
                api_response=response.text[:500],
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendAPIError(
                f"{method} {path} returned a non-JSON body",
                endpoint=path,
                status_code=response.status_code,
                api_response=response.text[:500],
            ) from e
