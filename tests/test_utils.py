import threading

import pytest

from utils import capitalize_first, clean_app_name, fan_out, normalize_group_category


def test_fan_out_keeps_call_order():
    assert fan_out(lambda: 1, lambda: 2, lambda: 3) == [1, 2, 3]
    assert fan_out() == []


def test_fan_out_runs_concurrently():
    barrier = threading.Barrier(2, timeout=5)
    assert fan_out(barrier.wait, barrier.wait) is not None


def test_fan_out_propagates_errors():
    def boom():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        fan_out(lambda: 1, boom)


@pytest.mark.parametrize(
    "raw, expected",
    [("quizrush.com", "QUIZRUSH"), ("BrainBox.COM", "BRAINBOX"), ("trivia", "TRIVIA"), (None, "Unknown"), ("", "Unknown")],
)
def test_clean_app_name(raw, expected):
    assert clean_app_name(raw) == expected


def test_capitalize_first():
    assert capitalize_first("science") == "Science"
    assert capitalize_first("") == ""


def test_normalize_group_category():
    assert normalize_group_category("Sekolah") == "School"
    assert normalize_group_category("Musholla") == "Mosque"
    assert normalize_group_category("Esports") == "Esports"
    assert normalize_group_category(None) == "Other"
