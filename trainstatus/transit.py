"""
TriMet API client for plotting MAX light rail vehicles on the map.

Requests look like:
    GET <base>/vehicles?appID=<key>&json=true
    GET <base>/arrivals?appID=<key>&json=true&locIDs=<id,id>

Responses are wrapped in a ``resultSet`` envelope holding either a
``vehicle`` list, an ``arrival`` list, or an ``error`` object. Entries are
kept only for the allow-listed MAX routes and mapped to Vehicle records.

This runs independently of the intersection status checks. Failures never
raise out of the *_feed methods; they return an unavailable feed instead.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

import requests

from trainstatus.circuit_breaker import CircuitBreaker, transit_breaker
from trainstatus.config import MAX_ROUTES, Settings
from trainstatus.errors import NetworkError, ParseError, TrainStatusError

logger = logging.getLogger(__name__)

MPS_TO_MPH = 2.23694

DIRECTIONS = {
    0: 'Outbound',
    1: 'Inbound',
}


@dataclass(frozen=True)
class Vehicle:
    id: str
    route_label: str
    line_name: str
    color: str
    lat: float
    lng: float
    direction: Optional[str] = None
    speed_mph: Optional[float] = None
    next_stop: Optional[str] = None
    passenger_count: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'routeLabel': self.route_label,
            'lineName': self.line_name,
            'color': self.color,
            'lat': self.lat,
            'lng': self.lng,
            'direction': self.direction,
            'speedMph': self.speed_mph,
            'nextStop': self.next_stop,
            'passengerCount': self.passenger_count,
        }


@dataclass(frozen=True)
class VehicleFeed:
    """Result of one transit fetch; ``available`` is False when there's nothing to plot."""
    kind: str
    vehicles: Tuple[Vehicle, ...] = ()
    available: bool = False
    error: Optional[str] = None
    fetched_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'available': self.available,
            'error': self.error,
            'count': len(self.vehicles),
            'vehicles': [v.to_dict() for v in self.vehicles],
            'fetched_at': self.fetched_at.isoformat(),
        }


def _route_number(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _direction(value) -> Optional[str]:
    return DIRECTIONS.get(_optional_int(value))


def _speed_mph(value) -> Optional[float]:
    """TriMet reports speed in meters per second when it reports it at all."""
    try:
        return round(float(value) * MPS_TO_MPH, 1) if value is not None else None
    except (TypeError, ValueError):
        return None


def _coordinates(lat, lng) -> Optional[Tuple[float, float]]:
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        return None


def parse_vehicle(entry: dict) -> Optional[Vehicle]:
    """
    Map a ``vehicle`` entry to a Vehicle.

    Returns:
        Vehicle, or None if it isn't on an allow-listed route or has no position
    """
    route = _route_number(entry.get('routeNumber'))
    if route not in MAX_ROUTES:
        return None

    position = _coordinates(entry.get('latitude'), entry.get('longitude'))
    if position is None:
        return None

    label, line_name, color = MAX_ROUTES[route]
    next_stop = entry.get('nextLocID')
    return Vehicle(
        id=str(entry.get('vehicleID')),
        route_label=label,
        line_name=line_name,
        color=color,
        lat=position[0],
        lng=position[1],
        direction=_direction(entry.get('direction')),
        speed_mph=_speed_mph(entry.get('speed')),
        next_stop=str(next_stop) if next_stop is not None else None,
        passenger_count=_optional_int(entry.get('passengerCount')),
    )


def parse_arrival(entry: dict) -> Optional[Vehicle]:
    """
    Map an ``arrival`` entry to the vehicle serving it.

    The vehicle position comes from the arrival's ``blockPosition``; the
    stop being arrived at is the vehicle's next stop.
    """
    route = _route_number(entry.get('route'))
    if route not in MAX_ROUTES:
        return None

    block = entry.get('blockPosition')
    if not isinstance(block, dict):
        return None

    position = _coordinates(block.get('lat'), block.get('lng'))
    if position is None:
        return None

    label, line_name, color = MAX_ROUTES[route]
    vehicle_id = entry.get('vehicleID') or block.get('vehicleID')
    location = entry.get('locid')
    return Vehicle(
        id=str(vehicle_id),
        route_label=label,
        line_name=line_name,
        color=color,
        lat=position[0],
        lng=position[1],
        direction=_direction(entry.get('dir')),
        speed_mph=_speed_mph(block.get('speed')),
        next_stop=str(location) if location is not None else None,
        passenger_count=_optional_int(entry.get('passengerCount')),
    )


def extract_result_set(payload, key: str) -> list:
    """
    Pull the entry list out of a TriMet response envelope.

    Raises:
        ParseError: If the envelope is missing, reports an error, or the
            entry list has the wrong type
    """
    if not isinstance(payload, dict) or not isinstance(payload.get('resultSet'), dict):
        raise ParseError("Response has no resultSet")

    result_set = payload['resultSet']
    if 'error' in result_set:
        error = result_set['error']
        message = error.get('content') if isinstance(error, dict) else error
        raise ParseError(f"TriMet API error: {message}")

    entries = result_set.get(key, [])
    if not isinstance(entries, list):
        raise ParseError(f"resultSet.{key} is not a list")
    return entries


class TransitClient:
    """Thin TriMet client bound to one Settings object."""

    def __init__(self, settings: Settings, breaker: CircuitBreaker = transit_breaker):
        self.settings = settings
        self.breaker = breaker

    def _url(self, endpoint: str) -> str:
        path = self.settings.trimet_endpoints.get(endpoint, endpoint).strip('/')
        return f"{self.settings.trimet_base_url.rstrip('/')}/{path}"

    def _get(self, endpoint: str, **params) -> dict:
        if not self.settings.trimet_app_id:
            raise NetworkError("TriMet appID not configured (set TRIMET_APP_ID)")

        query = {'appID': self.settings.trimet_app_id, 'json': 'true'}
        query.update(params)

        with self.breaker.guard():
            try:
                response = requests.get(
                    self._url(endpoint), params=query, timeout=self.settings.http_timeout
                )
                response.raise_for_status()
            except requests.RequestException as e:
                raise NetworkError(f"TriMet {endpoint} request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"TriMet {endpoint} returned invalid JSON: {e}") from e

    def fetch_vehicles(self) -> List[Vehicle]:
        """
        Current positions of allow-listed MAX vehicles.

        Raises:
            NetworkError, ParseError
        """
        entries = extract_result_set(self._get('vehicles'), 'vehicle')
        vehicles = [parse_vehicle(entry) for entry in entries if isinstance(entry, dict)]
        return [v for v in vehicles if v is not None]

    def fetch_arrivals(self) -> List[Vehicle]:
        """
        MAX vehicles approaching the configured stops, one record per vehicle.

        Raises:
            NetworkError, ParseError
        """
        if not self.settings.trimet_stop_ids:
            raise NetworkError("No stop IDs configured (set TRIMET_STOP_IDS)")

        entries = extract_result_set(
            self._get('arrivals', locIDs=','.join(self.settings.trimet_stop_ids)), 'arrival'
        )
        seen = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            vehicle = parse_arrival(entry)
            if vehicle is not None and vehicle.id not in seen:
                seen[vehicle.id] = vehicle
        return list(seen.values())

    def _feed(self, kind: str, fetch) -> VehicleFeed:
        try:
            vehicles = fetch()
        except TrainStatusError as e:
            logger.warning(f"TriMet {kind} unavailable: {e}")
            return VehicleFeed(kind=kind, available=False, error=str(e))

        if not vehicles:
            logger.info(f"No MAX {kind} to plot")
        return VehicleFeed(kind=kind, vehicles=tuple(vehicles), available=bool(vehicles))

    def vehicle_feed(self) -> VehicleFeed:
        return self._feed('vehicles', self.fetch_vehicles)

    def arrival_feed(self) -> VehicleFeed:
        return self._feed('arrivals', self.fetch_arrivals)
