import pytest

from ojudge.languages import Language
from ojudge.verdicts import (
    FAILURE_VERDICT,
    InvalidTransition,
    TERMINAL_VERDICTS,
    Verdict,
    can_transition,
    ensure_transition,
    is_terminal,
    parse_judge_verdict,
)


def test_six_terminal_verdicts():
    assert len(TERMINAL_VERDICTS) == 6
    assert not is_terminal(Verdict.PENDING)
    assert not is_terminal("Judging")
    assert is_terminal("Accepted")
    assert FAILURE_VERDICT is Verdict.RUNTIME_ERROR


@pytest.mark.parametrize("target", sorted(TERMINAL_VERDICTS))
def test_judging_moves_to_any_terminal(target):
    assert can_transition(Verdict.JUDGING, target)
    assert can_transition(Verdict.PENDING, target)


def test_terminal_verdicts_never_change():
    for current in TERMINAL_VERDICTS:
        for target in Verdict:
            assert not can_transition(current, target)
    with pytest.raises(InvalidTransition):
        ensure_transition(Verdict.ACCEPTED, Verdict.WRONG_ANSWER)


def test_judging_cannot_go_back():
    assert ensure_transition(Verdict.PENDING, Verdict.JUDGING) is Verdict.JUDGING
    assert not can_transition(Verdict.JUDGING, Verdict.PENDING)
    assert not can_transition(Verdict.JUDGING, Verdict.JUDGING)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Accepted", Verdict.ACCEPTED),
        ("accepted", Verdict.ACCEPTED),
        ("Wrong Answer", Verdict.WRONG_ANSWER),
        ("WRONG_ANSWER", Verdict.WRONG_ANSWER),
        ("time-limit-exceeded", Verdict.TIME_LIMIT_EXCEEDED),
        ("MLE", Verdict.MEMORY_LIMIT_EXCEEDED),
        ("RuntimeError", Verdict.RUNTIME_ERROR),
        ("ce", Verdict.COMPILATION_ERROR),
    ],
)
def test_parse_judge_verdict(raw, expected):
    assert parse_judge_verdict(raw) is expected


@pytest.mark.parametrize("raw", [None, "", "Judging", "Pending", "Partially Correct", 42])
def test_parse_judge_verdict_rejects_unknown(raw):
    assert parse_judge_verdict(raw) is None


def test_language_extensions():
    assert Language.parse(" CPP ") is Language.CPP
    assert Language.parse("Python").extension == "py"
    assert Language.JAVA.extension == "java"
    assert Language.parse("rust") is None
    assert Language.parse(None) is None
