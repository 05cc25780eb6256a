import json
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from vehicle_records import (  # noqa: E402
    LineFilter,
    VehicleRecord,
    normalize_operators,
    normalize_vehicle,
)


def _vehicle(lat, lon, **fields):
    raw = {"localizacao": {"latitude": lat, "longitude": lon}}
    raw.update(fields)
    return raw


def _record(line_id: str) -> VehicleRecord:
    return VehicleRecord(latitude=-15.8, longitude=-47.9, vehicleNumber="1", lineId=line_id)


def test_rejects_vehicle_without_location():
    assert normalize_vehicle({"numero": "123", "linha": "2207"}) is None


def test_rejects_location_that_is_not_an_object():
    assert normalize_vehicle({"localizacao": "-15.79,-47.88"}) is None


@pytest.mark.parametrize(
    "lat, lon",
    [
        ("", "-47.88"),
        ("-15.79", ""),
        ("   ", "-47.88"),
        (None, "-47.88"),
        ("abc", "-47.88"),
        ("-15.79", "NaN"),
        ("inf", "-47.88"),
        (float("nan"), -47.88),
        (True, -47.88),
        ({"value": 1}, -47.88),
    ],
)
def test_rejects_unusable_coordinates(lat, lon):
    assert normalize_vehicle(_vehicle(lat, lon)) is None


def test_rejects_missing_longitude():
    assert normalize_vehicle({"localizacao": {"latitude": "-15.79"}}) is None


def test_accepts_numeric_strings_and_numbers():
    from_strings = normalize_vehicle(_vehicle(" -15.79 ", "-47.88"))
    from_numbers = normalize_vehicle(_vehicle(-15.79, -47))

    assert from_strings.latitude == -15.79
    assert from_strings.longitude == -47.88
    assert from_numbers.latitude == -15.79
    assert from_numbers.longitude == -47.0
    assert isinstance(from_numbers.longitude, float)


def test_zero_coordinate_is_a_valid_position():
    record = normalize_vehicle(_vehicle("0", 0))
    assert record is not None
    assert (record.latitude, record.longitude) == (0.0, 0.0)


def test_defaults_for_missing_identity_fields():
    record = normalize_vehicle(_vehicle("-15.79", "-47.88"))
    assert record.vehicleNumber == ""
    assert record.lineId == ""
    assert record.heading == 0
    assert record.extra == {}


def test_maps_identity_fields_and_heading():
    record = normalize_vehicle(_vehicle("-15.79", "-47.88", numero=4321, linha="0.195", direcao=270))
    assert record.vehicleNumber == "4321"
    assert record.lineId == "0.195"
    assert record.heading == 270


def test_numeric_string_heading_is_converted_and_garbage_defaults_to_zero():
    assert normalize_vehicle(_vehicle("1", "2", direcao="90.5")).heading == 90.5
    assert normalize_vehicle(_vehicle("1", "2", direcao="norte")).heading == 0


def test_preserves_extra_fields_verbatim_and_drops_consumed_keys():
    nested = {"cor": "verde", "lugares": [1, 2]}
    raw = _vehicle(
        "-15.79",
        "-47.88",
        numero="123",
        linha="2207",
        horario=1700000000000,
        operadora=nested,
        velocidade=None,
        latitude="ignored",
        longitude="ignored",
    )
    record = normalize_vehicle(raw)

    assert record.extra == {"horario": 1700000000000, "operadora": nested, "velocidade": None}
    assert list(record.extra) == ["horario", "operadora", "velocidade"]
    assert record.extra["operadora"] is nested


def test_normalize_does_not_mutate_input():
    raw = _vehicle("-15.79", "-47.88", numero="1", sentido="IDA")
    snapshot = json.dumps(raw, sort_keys=True)
    normalize_vehicle(raw)
    assert json.dumps(raw, sort_keys=True) == snapshot


def test_to_dict_matches_example_payload():
    payload = [
        {"veiculos": [{"localizacao": {"latitude": "-15.79", "longitude": "-47.88"}, "numero": "123", "linha": "2207"}]}
    ]
    records = normalize_operators(payload)

    assert [r.to_dict() for r in records] == [
        {"latitude": -15.79, "longitude": -47.88, "vehicleNumber": "123", "lineId": "2207", "heading": 0}
    ]


def test_to_dict_fixed_fields_win_over_colliding_extras():
    record = normalize_vehicle(_vehicle("1", "2", numero="7", vehicleNumber="other", prefixo="A1"))
    assert record.to_dict() == {
        "latitude": 1.0,
        "longitude": 2.0,
        "vehicleNumber": "7",
        "lineId": "",
        "heading": 0,
        "prefixo": "A1",
    }


def test_from_dict_restores_extras():
    record = normalize_vehicle(_vehicle("1", "2", numero="7", linha="8002", direcao=45, prefixo="A1"))
    assert VehicleRecord.from_dict(json.loads(json.dumps(record.to_dict()))) == record


def test_normalize_operators_keeps_operator_then_vehicle_order():
    payload = [
        {"operadora": "A", "veiculos": [_vehicle("1", "1", numero="a1"), _vehicle("", "1", numero="bad")]},
        {"operadora": "B"},
        {"operadora": "C", "veiculos": None},
        {"operadora": "D", "veiculos": [_vehicle("2", "2", numero="d1"), _vehicle("3", "3", numero="d2")]},
    ]
    records = normalize_operators(payload)
    assert [r.vehicleNumber for r in records] == ["a1", "d1", "d2"]


def test_line_filter_keeps_allowed_lines_in_order():
    line_filter = LineFilter(enabled=True, allowed_lines={"2207", "2209"})
    records = [_record("2207"), _record("180.1"), _record("2209")]

    result = line_filter.apply(records)

    assert result == [records[0], records[2]]


def test_line_filter_disabled_passes_everything_through():
    line_filter = LineFilter(enabled=False, allowed_lines={"2207"})
    records = [_record("2207"), _record("180.1")]
    assert line_filter.apply(records) == records


HUGE_INT = json.loads("1" + "0" * 400)


@pytest.mark.parametrize(
    "lat, lon",
    [
        (HUGE_INT, "-47.88"),
        ("-15.79", -HUGE_INT),
        ("1" + "0" * 400, "-47.88"),
    ],
)
def test_rejects_coordinates_beyond_float_range(lat, lon):
    assert normalize_vehicle(_vehicle(lat, lon)) is None


@pytest.mark.parametrize("direcao", [HUGE_INT, -HUGE_INT, "1" + "0" * 400, float("inf")])
def test_out_of_range_heading_defaults_to_zero(direcao):
    record = normalize_vehicle(_vehicle("-15.79", "-47.88", direcao=direcao))
    assert record is not None
    assert record.heading == 0


def test_one_out_of_range_vehicle_does_not_sink_the_operator_list():
    payload = [
        {
            "veiculos": [
                _vehicle("-15.79", "-47.88", numero="ok"),
                _vehicle(HUGE_INT, "-47.88", numero="too-big"),
                _vehicle("-15.80", "-47.90", numero="spinning", direcao=HUGE_INT),
            ]
        }
    ]
    assert [r.vehicleNumber for r in normalize_operators(payload)] == ["ok", "spinning"]
