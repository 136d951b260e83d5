import pytest

from tutorconnect.services.badges import get_student_badge, get_teacher_badge


@pytest.mark.parametrize(
    ('sessions', 'partners', 'expected'),
    [
        (0, 0, None),
        (2, 1, 'Bronse'),
        (10, 1, 'Bronse'),
        (10, 2, 'Sølv'),
        (50, 5, 'Gull'),
        (250, 9, 'Gull'),
        (200, 10, 'Platina'),
    ],
)
def test_badges_require_both_thresholds(sessions: int, partners: int, expected: str | None) -> None:
    assert get_teacher_badge(sessions, partners) == expected
    assert get_student_badge(sessions, partners) == expected


def test_badges_treat_missing_counters_as_zero() -> None:
    assert get_teacher_badge(None, None) is None
