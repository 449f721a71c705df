"""Async client for the remote station directory (radio-browser.info) using httpx.

Endpoints:
- GET /countrycodes[/filter], /languages[/filter], /tags[/filter] (facets)
- GET /stations/<by...>/<term> (filtered station list)
- GET /stations/search (advanced search)
- GET /url/<uuid> (count a click)

The directory is read-only from the library's point of view: results are
decoded into :class:`RemoteStation` and mapped to the library's own
:class:`~tuneout.storage.models.Station` by :func:`station_from_remote`
before anything is stored.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from tuneout.config import DirectoryConfig
from tuneout.storage.models import Station

log = structlog.get_logger(__name__)


class DirectoryError(Exception):
    """Raised when the directory returns an error or an undecodable body."""


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class RemoteStation(BaseModel):
    """A station as returned by the directory (subset of its fields)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    stationuuid: UUID
    name: str
    url: str
    url_resolved: str | None = None
    homepage: str | None = None
    favicon: str | None = None
    tags: str | None = None
    country: str | None = None
    countrycode: str | None = None
    language: str | None = None
    languagecodes: str | None = None
    codec: str | None = None
    bitrate: int | None = None
    votes: int | None = None
    clickcount: int | None = None
    lastcheckok: int | None = None


class CountryInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    stationcount: int


class LanguageInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    iso_639: str | None = None
    stationcount: int


class TagInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    stationcount: int


class ClickResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    ok: bool
    message: str | None = None
    stationuuid: UUID | None = None
    name: str | None = None
    url: str | None = None


class QueryParams(BaseModel):
    """Paging and ordering shared by all list endpoints."""

    order: str | None = None
    reverse: bool | None = None
    hidebroken: bool | None = None
    offset: int | None = None
    limit: int | None = None

    def to_params(self) -> dict[str, str]:
        return _to_params(self.model_dump(exclude_none=True))


class StationQuery(BaseModel):
    """Advanced search filters for ``/stations/search``."""

    name: str | None = None
    nameExact: bool | None = None  # noqa: N815
    country: str | None = None
    countrycode: str | None = None
    language: str | None = None
    tag: str | None = None
    tagExact: bool | None = None  # noqa: N815
    tagList: str | None = None  # noqa: N815
    codec: str | None = None
    bitrateMin: int | None = None  # noqa: N815
    bitrateMax: int | None = None  # noqa: N815
    is_https: bool | None = None

    def to_params(self) -> dict[str, str]:
        return _to_params(self.model_dump(exclude_none=True))


class StationFilter(StrEnum):
    """Path-style filters for ``/stations/<filter>/<term>``."""

    BYUUID = "byuuid"
    BYNAME = "byname"
    BYNAMEEXACT = "bynameexact"
    BYCODEC = "bycodec"
    BYCOUNTRY = "bycountry"
    BYCOUNTRYCODEEXACT = "bycountrycodeexact"
    BYLANGUAGE = "bylanguage"
    BYTAG = "bytag"
    BYTAGEXACT = "bytagexact"


def _to_params(values: dict[str, Any]) -> dict[str, str]:
    return {k: ("true" if v else "false") if isinstance(v, bool) else str(v) for k, v in values.items()}


# ---------------------------------------------------------------------------
# Boundary mapping
# ---------------------------------------------------------------------------


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def station_from_remote(remote: RemoteStation) -> Station:
    """Map a directory result to an unsaved library station."""
    return Station(
        station_uuid=remote.stationuuid,
        name=remote.name.strip() or remote.url,
        url=_blank_to_none(remote.url_resolved) or remote.url,
        homepage=_blank_to_none(remote.homepage),
        favicon=_blank_to_none(remote.favicon),
        tags=_blank_to_none(remote.tags),
        country_code=_blank_to_none(remote.countrycode),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class DirectoryClient:
    """Async read-only client for the station directory."""

    def __init__(
        self,
        config: DirectoryConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> DirectoryClient:
        kw: dict = {
            "base_url": self._config.base_url.rstrip("/") + "/",
            "timeout": float(self._config.timeout_seconds),
            "headers": {"User-Agent": self._config.user_agent},
        }
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        assert self._client is not None  # noqa: S101
        try:
            resp = await self._client.get(path, params=params)
        except httpx.TransportError as exc:
            raise DirectoryError(f"Directory request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise DirectoryError(f"Directory error: {resp.status_code} {resp.text}")
        log.debug("directory_request", path=path, status=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise DirectoryError(f"Directory returned invalid JSON for {path}") from exc

    async def _get_list(self, model: type[BaseModel], path: str, params: dict[str, str] | None = None) -> list:
        data = await self._get_json(path, params)
        if not isinstance(data, list):
            raise DirectoryError(f"Expected a list from {path}")
        try:
            return [model.model_validate(item) for item in data]
        except ValidationError as exc:
            raise DirectoryError(f"Unexpected payload from {path}: {exc}") from exc

    @staticmethod
    def _facet_path(endpoint: str, filter: str | None) -> str:  # noqa: A002
        return f"{endpoint}/{filter}" if filter else endpoint

    def _paging(self, params: QueryParams | None) -> dict[str, str]:
        params = params or QueryParams()
        if params.hidebroken is None:
            params = params.model_copy(update={"hidebroken": self._config.hide_broken})
        return params.to_params()

    # -- public API --

    async def fetch_countries(self, filter: str | None = None, params: QueryParams | None = None) -> list[CountryInfo]:  # noqa: A002
        return await self._get_list(CountryInfo, self._facet_path("countrycodes", filter), params and params.to_params())

    async def fetch_languages(self, filter: str | None = None, params: QueryParams | None = None) -> list[LanguageInfo]:  # noqa: A002
        return await self._get_list(LanguageInfo, self._facet_path("languages", filter), params and params.to_params())

    async def fetch_tags(self, filter: str | None = None, params: QueryParams | None = None) -> list[TagInfo]:  # noqa: A002
        return await self._get_list(TagInfo, self._facet_path("tags", filter), params and params.to_params())

    async def fetch_stations(
        self,
        by: StationFilter | None = None,
        term: str | None = None,
        params: QueryParams | None = None,
    ) -> list[RemoteStation]:
        path = "stations"
        if by is not None:
            path = f"stations/{by.value}/{term or ''}"
        return await self._get_list(RemoteStation, path, self._paging(params))

    async def search_stations(self, query: StationQuery, params: QueryParams | None = None) -> list[RemoteStation]:
        stations = await self._get_list(
            RemoteStation,
            "stations/search",
            {**query.to_params(), **self._paging(params)},
        )
        log.info("directory_search", results=len(stations))
        return stations

    async def click(self, station_uuid: UUID) -> ClickResponse:
        data = await self._get_json(f"url/{str(station_uuid).lower()}")
        try:
            return ClickResponse.model_validate(data)
        except ValidationError as exc:
            raise DirectoryError(f"Unexpected click payload: {exc}") from exc
