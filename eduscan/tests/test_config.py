from eduscan.config import _parse_bool, _parse_choice, _parse_csv, _parse_float, _parse_int


def test_parse_bool():
    assert _parse_bool(None, True) is True
    assert _parse_bool(" Yes ", False) is True
    assert _parse_bool("off", True) is False
    assert _parse_bool("maybe", False) is False


def test_parse_csv():
    assert _parse_csv(None, ["a"]) == ["a"]
    assert _parse_csv("http://a, http://b ,", []) == ["http://a", "http://b"]
    assert _parse_csv(" , ", ["fallback"]) == ["fallback"]


def test_parse_int_clamps_and_falls_back():
    assert _parse_int("4500", 1) == 4500
    assert _parse_int("-5", 1) == 0
    assert _parse_int("0", 100, minimum=1) == 1
    assert _parse_int("abc", 7) == 7
    assert _parse_int("  ", 7) == 7


def test_parse_float_and_choice():
    assert _parse_float("2.5", 8.0) == 2.5
    assert _parse_float("fast", 8.0) == 8.0
    assert _parse_choice("EXACT", {"free", "exact"}, "free") == "exact"
    assert _parse_choice("strict", {"free", "exact"}, "free") == "free"
