"""Tests for the shipping quote (ViaCEP, Nominatim and OSRM mocked)."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from pixstore.settings import save_settings
from pixstore.shipping import (
    Coordinates, ShippingError, calculate_shipping, geocode_address, get_address_from_cep,
    is_within_delivery_area, straight_line_distance,
)

VIACEP = {"cep": "01001-000", "logradouro": "Praça da Sé", "bairro": "Sé", "localidade": "São Paulo", "uf": "SP"}


def _resp(body, status=200):
    r = MagicMock()
    r.status_code = status
    if isinstance(body, Exception):
        r.json.side_effect = body
    else:
        r.json.return_value = body
    return r


def _router(viacep=VIACEP, nominatim=None, osrm=None, osrm_error=None):
    nominatim = nominatim if nominatim is not None else [{"lat": "-23.55", "lon": "-46.63"}]
    osrm = osrm if osrm is not None else {"code": "Ok", "routes": [{"distance": 20000, "duration": 1500}]}

    def fake_get(url, params=None, headers=None, timeout=None):
        if "viacep" in url:
            return _resp(viacep)
        if "nominatim" in url:
            return _resp(nominatim)
        if osrm_error:
            raise osrm_error
        return _resp(osrm)
    return fake_get


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    def test_address_from_cep(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router()) as get:
            data = get_address_from_cep("01001-000")
        assert data["localidade"] == "São Paulo"
        assert "01001000" in get.call_args.args[0]

    def test_cep_not_found(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router(viacep={"erro": True})):
            with pytest.raises(ShippingError, match="CEP não encontrado"):
                get_address_from_cep("99999999")

    def test_invalid_cep(self, app):
        with pytest.raises(ShippingError):
            get_address_from_cep("123")

    def test_geocode_falls_back_to_postalcode(self, app):
        calls = []

        def fake_get(url, params=None, headers=None, timeout=None):
            calls.append(params)
            return _resp([] if "q" in params else [{"lat": "-23.5", "lon": "-46.6"}])

        with patch("pixstore.shipping.requests.get", side_effect=fake_get):
            coords = geocode_address("01001000", VIACEP)
        assert coords == Coordinates(lat=-23.5, lon=-46.6)
        assert calls[1]["postalcode"] == "01001000"

    def test_cep_lookup_not_json(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router(viacep=ValueError("<html>"))):
            with pytest.raises(ShippingError, match="Erro ao buscar CEP"):
                get_address_from_cep("01001000")

    @pytest.mark.parametrize("body", [ValueError("<html>"), {"erro": "x"}, [{"lat": "-23.5"}], [{"lat": "n/a", "lon": "x"}]])
    def test_geocode_bad_response(self, app, body):
        with patch("pixstore.shipping.requests.get", return_value=_resp(body)):
            with pytest.raises(ShippingError):
                geocode_address("01001000", VIACEP)

    def test_geocode_not_found(self, app):
        with patch("pixstore.shipping.requests.get", return_value=_resp([])):
            with pytest.raises(ShippingError):
                geocode_address("01001000", VIACEP)

    def test_straight_line_distance(self):
        d = straight_line_distance(Coordinates(-23.55, -46.63), Coordinates(-22.91, -43.17))
        assert 350_000 < d < 370_000


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------


class TestCalculateShipping:
    def test_quote_uses_route_and_settings(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router()):
            q = calculate_shipping("01001-000", Decimal("100.00"))
        assert q.distance_km == 20.0
        assert q.shipping_cost == 37.0
        assert q.estimated_time_minutes == 25
        assert q.free_shipping is False
        assert q.free_shipping_remaining == 200.0
        assert q.delivery_address == "Praça da Sé, Sé, São Paulo - SP"

    def test_minimum_cost(self, app):
        osrm = {"code": "Ok", "routes": [{"distance": 1000, "duration": 120}]}
        with patch("pixstore.shipping.requests.get", side_effect=_router(osrm=osrm)):
            q = calculate_shipping("01001000", 50)
        assert q.shipping_cost == 10.0

    def test_free_over_threshold(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router()):
            q = calculate_shipping("01001000", "300.00")
        assert q.free_shipping is True
        assert q.shipping_cost == 0.0
        assert q.free_shipping_remaining == 0.0

    def test_osrm_failure_uses_straight_line(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router(osrm_error=requests.Timeout("slow"))):
            q = calculate_shipping("01001000", 10)
        assert q.distance_km > 0
        assert q.estimated_time_minutes > 0

    @pytest.mark.parametrize("osrm", [
        ValueError("html error page"),
        {"code": "Ok", "routes": [{"distance": 1000}]},
        {"code": "Ok", "routes": "nope"},
    ])
    def test_bad_osrm_response_uses_straight_line(self, app, osrm):
        with patch("pixstore.shipping.requests.get", side_effect=_router(osrm=osrm)):
            q = calculate_shipping("01001000", 10)
        assert q.distance_km > 0
        assert q.estimated_time_minutes > 0

    def test_cep_not_json_raises_shipping_error(self, app):
        with patch("pixstore.shipping.requests.get", side_effect=_router(viacep=ValueError("not json"))):
            with pytest.raises(ShippingError):
                calculate_shipping("01001000", 10)

    def test_settings_change_price(self, app):
        save_settings({"shipping_price_per_km": "2.00", "free_shipping_threshold": "1000.00"})
        with patch("pixstore.shipping.requests.get", side_effect=_router()):
            q = calculate_shipping("01001000", 100)
        assert q.shipping_cost == 40.0

    def test_invalid_cep(self, app):
        with pytest.raises(ShippingError):
            calculate_shipping("abc", 10)

    def test_delivery_area(self, app):
        assert is_within_delivery_area(50)
        assert not is_within_delivery_area(50.1)
        save_settings({"shipping_max_distance_km": "80"})
        assert is_within_delivery_area(60)
