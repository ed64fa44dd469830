import datetime
import enum
import pytest
from docrecord.codec import dumps, encode_value, loads, sort_text


class Color(enum.Enum):
    red = "red"


def test_encode_tags_non_json_values():
    assert encode_value({"at": datetime.date(2024, 1, 2), "pair": (1, 2)}) == {
        "at": {"$date": "2024-01-02"},
        "pair": {"$tuple": [1, 2]},
    }


def test_encode_datetime_before_date():
    assert encode_value(datetime.datetime(2024, 1, 2, 3, 4)) == {
        "$datetime": "2024-01-02T03:04:00"
    }


def test_encode_enum_as_value():
    assert encode_value([Color.red]) == ["red"]


def test_encode_rejects_non_str_keys():
    with pytest.raises(TypeError):
        encode_value({1: "one"})


def test_encode_rejects_unknown_types():
    with pytest.raises(TypeError):
        encode_value(object())


def test_tag_shaped_dict_survives():
    text = dumps({"$tuple": [1, 2]})
    assert loads(text) == {"$tuple": [1, 2]}


def test_sort_text_is_compact():
    assert sort_text({"a": [1, "é"]}) == '{"a":[1,"é"]}'
