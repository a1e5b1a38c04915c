import pytest

from msgbridge.api.rpc.params import limit_param, optional_bool, optional_int, optional_str, required_str, str_list
from msgbridge.api.rpc.protocol import INVALID_PARAMS, RpcError


def test_optional_int_accepts_numeric_strings_and_integral_floats():
    assert optional_int({"chat_id": "12"}, "chat_id") == 12
    assert optional_int({"chat_id": 3.0}, "chat_id") == 3
    assert optional_int({}, "chat_id") is None


@pytest.mark.parametrize("value", [True, "abc", 1.5, [1]])
def test_optional_int_rejects_other_values(value):
    with pytest.raises(RpcError) as info:
        optional_int({"chat_id": value}, "chat_id")
    assert info.value.code == INVALID_PARAMS
    assert "chat_id" in info.value.data


def test_strings_are_stripped_and_blank_means_absent():
    assert optional_str({"to": "  +1555  "}, "to") == "+1555"
    assert optional_str({"to": "   "}, "to") is None
    with pytest.raises(RpcError):
        required_str({"to": ""}, "to")


def test_optional_bool_default_and_strings():
    assert optional_bool({}, "typing", default=True) is True
    assert optional_bool({"typing": "off"}, "typing") is False
    with pytest.raises(RpcError):
        optional_bool({"typing": "maybe"}, "typing")


def test_str_list_accepts_list_or_comma_string():
    assert str_list({"participants": "a@x.com, +1555 ,"}, "participants") == ["a@x.com", "+1555"]
    assert str_list({"participants": ["a", " b "]}, "participants") == ["a", "b"]
    with pytest.raises(RpcError):
        str_list({"participants": [1]}, "participants")


def test_limit_is_clamped_to_one():
    assert limit_param({}, 20) == 20
    assert limit_param({"limit": 0}, 20) == 1
    assert limit_param({"limit": -5}, 20) == 1
