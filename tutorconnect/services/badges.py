"""Activity badges derived from completed-session statistics."""

# (level, minimum sessions, minimum distinct partners), highest first.
BADGE_LEVELS = (
    ('Platina', 200, 10),
    ('Gull', 50, 5),
    ('Sølv', 10, 2),
    ('Bronse', 2, 1),
)


def _badge_for(sessions: int, partners: int) -> str | None:
    for level, min_sessions, min_partners in BADGE_LEVELS:
        if sessions >= min_sessions and partners >= min_partners:
            return level
    return None


def get_teacher_badge(sessions: int, students: int) -> str | None:
    return _badge_for(sessions or 0, students or 0)


def get_student_badge(sessions: int, teachers: int) -> str | None:
    return _badge_for(sessions or 0, teachers or 0)
