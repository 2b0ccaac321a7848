"""Delivery quotes by distance from the warehouse.

CEP -> ViaCEP address -> Nominatim coordinates -> OSRM driving route.  When OSRM
is down the straight-line distance (+30% for streets) is used instead.
"""

import logging
import math
from dataclasses import dataclass, asdict
from decimal import Decimal

import requests
from flask import current_app

from .helpers import money, only_digits
from .settings import get_setting_decimal

logger = logging.getLogger(__name__)

VIACEP_URL = "https://viacep.com.br/ws/{cep}/json/"
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
OSRM_URL = "https://router.project-osrm.org/route/v1/driving/{o_lon},{o_lat};{d_lon},{d_lat}"

EARTH_RADIUS_KM = 6371
STREET_FACTOR = 1.3
AVERAGE_SPEED_KM_H = 30
HTTP_TIMEOUT = 10


class ShippingError(Exception):
    pass


@dataclass
class Coordinates:
    lat: float
    lon: float


@dataclass
class ShippingQuote:
    distance_km: float
    shipping_cost: float
    estimated_time_minutes: int
    free_shipping: bool
    free_shipping_remaining: float
    delivery_address: str

    def to_dict(self):
        return asdict(self)


def is_valid_cep(cep) -> bool:
    return len(only_digits(cep)) == 8

def warehouse_coordinates() -> Coordinates:
    return Coordinates(
        lat=float(current_app.config.get("WAREHOUSE_LAT", -23.6947)),
        lon=float(current_app.config.get("WAREHOUSE_LON", -46.5558)),
    )

def _headers():
    return {"User-Agent": current_app.config.get("HTTP_USER_AGENT", "PixStore-Delivery-App/1.0")}

def _json(r, message: str):
    try:
        return r.json()
    except ValueError as exc:
        raise ShippingError(message) from exc


# -------------------------
# Lookups
# -------------------------
def get_address_from_cep(cep: str) -> dict:
    digits = only_digits(cep)
    if len(digits) != 8:
        raise ShippingError("CEP inválido")

    try:
        r = requests.get(VIACEP_URL.format(cep=digits), timeout=HTTP_TIMEOUT)
    except requests.RequestException as exc:
        raise ShippingError("Erro ao buscar CEP") from exc
    if r.status_code >= 400:
        raise ShippingError("Erro ao buscar CEP")

    data = _json(r, "Erro ao buscar CEP")
    if not isinstance(data, dict):
        raise ShippingError("Erro ao buscar CEP")
    if data.get("erro"):
        raise ShippingError("CEP não encontrado")
    return data

def _nominatim(params: dict) -> list:
    try:
        r = requests.get(NOMINATIM_URL, params=params, headers=_headers(), timeout=HTTP_TIMEOUT)
    except requests.RequestException as exc:
        raise ShippingError("Erro ao geocodificar endereço") from exc
    if r.status_code >= 400:
        raise ShippingError("Erro ao geocodificar endereço")
    results = _json(r, "Erro ao geocodificar endereço") or []
    if not isinstance(results, list):
        raise ShippingError("Erro ao geocodificar endereço")
    return results

def geocode_address(cep: str, address: dict) -> Coordinates:
    digits = only_digits(cep)
    query = ", ".join([
        address.get("logradouro") or "",
        address.get("bairro") or "",
        address.get("localidade") or "",
        address.get("uf") or "",
        "Brazil",
    ])
    results = _nominatim({"q": query, "format": "json", "limit": 1, "countrycodes": "br"})
    if not results:
        # só o CEP
        results = _nominatim({"postalcode": digits, "country": "BR", "format": "json", "limit": 1})
    if not results:
        raise ShippingError("Não foi possível encontrar as coordenadas para este CEP")
    try:
        return Coordinates(lat=float(results[0]["lat"]), lon=float(results[0]["lon"]))
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise ShippingError("Não foi possível encontrar as coordenadas para este CEP") from exc

def calculate_route(origin: Coordinates, destination: Coordinates):
    """Return (distance_meters, duration_seconds) for a driving route."""
    url = OSRM_URL.format(o_lon=origin.lon, o_lat=origin.lat, d_lon=destination.lon, d_lat=destination.lat)
    try:
        r = requests.get(url, params={"overview": "false"}, headers=_headers(), timeout=HTTP_TIMEOUT)
    except requests.RequestException as exc:
        raise ShippingError("Erro ao calcular distância e tempo de entrega") from exc
    if r.status_code >= 400:
        raise ShippingError(f"OSRM API error: {r.status_code}")

    data = _json(r, "Não foi possível calcular a rota")
    if not isinstance(data, dict) or data.get("code") != "Ok" or not data.get("routes"):
        raise ShippingError("Não foi possível calcular a rota")
    try:
        route = data["routes"][0]
        return float(route["distance"]), float(route["duration"])
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise ShippingError("Não foi possível calcular a rota") from exc

def straight_line_distance(origin: Coordinates, destination: Coordinates) -> float:
    """Haversine distance in meters."""
    d_lat = math.radians(destination.lat - origin.lat)
    d_lon = math.radians(destination.lon - origin.lon)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(origin.lat)) * math.cos(math.radians(destination.lat))
         * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c * 1000


# -------------------------
# Quote
# -------------------------
def calculate_shipping(cep: str, cart_total) -> ShippingQuote:
    if not is_valid_cep(cep):
        raise ShippingError("CEP inválido")

    cart_total = money(cart_total)
    address = get_address_from_cep(cep)
    delivery_address = (
        f"{address.get('logradouro', '')}, {address.get('bairro', '')}, "
        f"{address.get('localidade', '')} - {address.get('uf', '')}"
    )
    destination = geocode_address(cep, address)
    origin = warehouse_coordinates()

    try:
        distance_m, duration_s = calculate_route(origin, destination)
    except ShippingError as exc:
        logger.warning("OSRM falhou, usando cálculo em linha reta: %s", exc)
        distance_m = straight_line_distance(origin, destination) * STREET_FACTOR
        duration_s = (distance_m / 1000) / AVERAGE_SPEED_KM_H * 3600

    distance_km = Decimal(str(distance_m)) / 1000
    price_per_km = get_setting_decimal("shipping_price_per_km")
    min_cost = get_setting_decimal("shipping_min_cost")
    threshold = get_setting_decimal("free_shipping_threshold")

    cost = max(money(distance_km * price_per_km), min_cost)
    free = cart_total >= threshold
    if free:
        cost = money(0)
    remaining = money(0) if free else max(money(0), threshold - cart_total)

    quote = ShippingQuote(
        distance_km=float(money(distance_km)),
        shipping_cost=float(money(cost)),
        estimated_time_minutes=int(math.ceil(duration_s / 60)),
        free_shipping=free,
        free_shipping_remaining=float(money(remaining)),
        delivery_address=delivery_address,
    )
    logger.info("Frete calculado para CEP %s: %.2f km, R$ %.2f", only_digits(cep)[:5], quote.distance_km, quote.shipping_cost)
    return quote

def is_within_delivery_area(distance_km) -> bool:
    return float(distance_km) <= float(get_setting_decimal("shipping_max_distance_km"))
