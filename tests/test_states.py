import pytest

from ungbot.bot import states
from ungbot.bot.keyboards import rows
from ungbot.bot.replies import Button


def test_select_payload_round_trip():
    data = states.select("invoice", "client_id", 7)
    assert data == "sel:invoice:client_id:7"
    assert states.parse_callback(data) == ["sel", "invoice", "client_id", "7"]


def test_select_value_may_contain_colon():
    assert states.parse_callback("sel:f:s:a:b") == ["sel", "f", "s", "a:b"]


def test_start_payload():
    assert states.start_flow("client") == "start:client"
    assert states.parse_callback(states.start_flow("gig_task", 12)) == ["start", "gig_task", "12"]


def test_empty_payload():
    assert states.parse_callback("") == []
    assert states.parse_callback(None) == []


def test_callback_data_limit():
    with pytest.raises(ValueError):
        states.select("flow", "step", "x" * 64)


def test_rows_layout():
    buttons = [Button(str(i), str(i)) for i in range(5)]
    keyboard = rows(buttons, columns=2)
    assert [[b.text for b in row] for row in keyboard] == [["0", "1"], ["2", "3"], ["4"]]
