import logging
from typing import Any, Callable, List, Optional, Type, TypeVar, Union

from musiclink.errors import TransportError

from . import builder
from .builder import TrackIds
from .manager import TokenManager
from .models import (
    LIBRARY_ITEMS,
    SEARCH_ITEMS,
    ItemT,
    Track,
    decode_library,
    decode_search,
)
from .outcome import Failure, FailureReason, Outcome, Success
from .token import Token
from .transport import ApiRequest, Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

DECODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError)

TrackRef = Union[Track, TrackIds]


def _ids(track: TrackRef) -> str:
    if isinstance(track, Track):
        return builder.track_ids(track.id)
    return builder.track_ids(track)


class CatalogClient:
    """Search, item lookup and saved-tracks library on top of a ``TokenManager``.

    Every call is gated by the manager, so an expired token is refreshed
    before the request goes out. A ``401`` from the API forces one refresh
    and one retry when ``retry_on_unauthorized`` is set.
    """

    def __init__(
        self,
        manager: TokenManager,
        transport: Optional[Transport] = None,
        *,
        retry_on_unauthorized: bool = True,
    ):
        self.manager = manager
        self.transport = transport or manager.transport
        self.settings = manager.settings
        self.retry_on_unauthorized = retry_on_unauthorized

    async def _send(self, request: ApiRequest, decode: Callable[[Any], T]) -> Outcome[T]:
        try:
            response = await self.transport.send(request)
        except TransportError as exc:
            logger.warning("%s", exc)
            return Failure(FailureReason.TRANSPORT, str(exc))

        if not response.ok:
            logger.debug("%s %s -> HTTP %s", request.method.value, request.url, response.status_code)
            return Failure(FailureReason.HTTP_STATUS, request.url, response.status_code)

        try:
            return Success(decode(response.json()))
        except DECODE_ERRORS as exc:
            logger.warning("Cannot decode response from %s: %r", request.url, exc)
            return Failure(FailureReason.DECODE, repr(exc))

    async def _call(self, build: Callable[[Token], ApiRequest], decode: Callable[[Any], T]) -> Outcome[T]:
        async def operation(token: Token) -> Outcome[T]:
            return await self._send(build(token), decode)

        outcome = await self.manager.with_valid_token(operation)
        if (
            self.retry_on_unauthorized
            and isinstance(outcome, Failure)
            and outcome.reason is FailureReason.HTTP_STATUS
            and outcome.status == 401
        ):
            logger.info("Access token rejected, refreshing once")
            refreshed = await self.manager.refresh()
            if not refreshed.ok:
                return refreshed
            outcome = await self.manager.with_valid_token(operation)
        return outcome

    # Catalog

    async def search(self, item_type: Type[ItemT], keyword: str) -> Outcome[List[ItemT]]:
        if SEARCH_ITEMS.get(item_type.item_type) is not item_type:
            return Failure(FailureReason.INVALID_REQUEST, f"{item_type.__name__} is not searchable")
        return await self._call(
            lambda token: builder.search_request(self.settings, item_type.item_type, keyword, token.access_token),
            lambda payload: decode_search(item_type, payload),
        )

    async def get(
        self,
        item_type: Type[ItemT],
        item_id: str,
        playlist_owner_id: Optional[str] = None,
    ) -> Outcome[ItemT]:
        try:
            builder.item_url(self.settings, item_type.item_type, item_id, playlist_owner_id)
        except ValueError as exc:
            return Failure(FailureReason.INVALID_REQUEST, str(exc))

        return await self._call(
            lambda token: builder.item_request(
                self.settings, item_type.item_type, item_id, token.access_token, playlist_owner_id
            ),
            item_type.from_json,
        )

    async def find_track(self, title: str, artist: str) -> Outcome[Track]:
        outcome = await self.search(Track, f"{title} {artist}")
        if not outcome.ok:
            return outcome
        if not outcome.value:
            return Failure(FailureReason.NOT_FOUND, f"no track for {title!r} by {artist!r}")
        return Success(outcome.value[0])

    # User's library

    async def library(self, item_type: Type[ItemT]) -> Outcome[List[ItemT]]:
        if LIBRARY_ITEMS.get(item_type.item_type) is not item_type:
            return Failure(FailureReason.INVALID_REQUEST, f"{item_type.__name__} cannot be saved in a library")
        return await self._call(
            lambda token: builder.library_request(self.settings, item_type.item_type, token.access_token),
            lambda payload: decode_library(item_type, payload),
        )

    async def save_track(self, track: TrackRef) -> Outcome[bool]:
        ids = _ids(track)
        if not ids:
            return Failure(FailureReason.INVALID_REQUEST, "no track ids")
        return await self._call(
            lambda token: builder.save_tracks_request(self.settings, ids, token.access_token),
            lambda payload: True,
        )

    async def delete_track(self, track: TrackRef) -> Outcome[bool]:
        ids = _ids(track)
        if not ids:
            return Failure(FailureReason.INVALID_REQUEST, "no track ids")
        return await self._call(
            lambda token: builder.delete_tracks_request(self.settings, ids, token.access_token),
            lambda payload: True,
        )

    async def is_saved(self, track: TrackRef) -> Outcome[bool]:
        ids = _ids(track)
        if not ids:
            return Failure(FailureReason.INVALID_REQUEST, "no track ids")
        return await self._call(
            lambda token: builder.contains_tracks_request(self.settings, ids, token.access_token),
            lambda payload: bool(payload[0]),
        )
