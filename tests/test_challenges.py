from datetime import date, timedelta

import pytest

import challenges
from conftest import TZ, make_challenge, make_user, noon
from errors import Conflict, InvalidState, NotFound, ValidationFailed
from models import Enrollment, EnrollmentDay, EnrollmentStatus, Habit, HabitLog
from timezones import day_start, to_naive_utc

D = date(2026, 2, 20)


def d(offset: int) -> date:
    return D + timedelta(days=offset)


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def challenge(db):
    return make_challenge(db, duration_days=3)


def join(db, user, challenge, offset=0, start_day=None):
    return challenges.join_challenge(db, user, challenge.id, TZ, noon(d(offset)), start_day)


def add_habit(db, user, enrollment, title="Correr", offset=0):
    return challenges.create_habit(db, user, enrollment.id, title, TZ, noon(d(offset)))


def log(db, user, habit, offset, day=None):
    return challenges.log_habit_completion(db, user, habit.id, TZ, noon(d(offset)), day)


class TestJoin:
    def test_new_enrollment_starts_clean(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        assert enrollment.status == EnrollmentStatus.active.value
        assert enrollment.lives_remaining == 5
        assert enrollment.completed_days == 0
        assert enrollment.start_date == to_naive_utc(day_start(TZ, D))

    def test_explicit_start_day(self, db, user, challenge):
        enrollment = join(db, user, challenge, offset=2, start_day=d(1))
        assert enrollment.start_date == to_naive_utc(day_start(TZ, d(1)))

    def test_second_join_while_active_conflicts_with_state(self, db, user, challenge):
        first = join(db, user, challenge)
        with pytest.raises(Conflict) as exc_info:
            join(db, user, challenge, offset=1)
        state = exc_info.value.context["enrollment"]
        assert state["id"] == first.id
        assert state["status"] == "active"
        assert state["lives_remaining"] == 4

    def test_rejoin_after_lazy_failure_creates_new_enrollment(self, db, user, challenge):
        first = join(db, user, challenge)
        second = join(db, user, challenge, offset=5)

        db.refresh(first)
        assert first.status == EnrollmentStatus.failed.value
        assert second.id != first.id
        assert second.status == EnrollmentStatus.active.value
        assert second.lives_remaining == 5

    def test_unknown_challenge(self, db, user):
        with pytest.raises(NotFound):
            challenges.join_challenge(db, user, 999, TZ, noon(D))


class TestHabits:
    def test_duplicate_title_is_case_insensitive(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        add_habit(db, user, enrollment, "Correr")
        with pytest.raises(Conflict):
            add_habit(db, user, enrollment, "correr")

    def test_no_new_habits_once_a_day_counted(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)
        with pytest.raises(InvalidState):
            add_habit(db, user, enrollment, "Meditar", offset=1)

    def test_other_users_cannot_see_the_enrollment(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        intruder = make_user(db, email="otro@example.com", name="Otro")
        with pytest.raises(NotFound):
            challenges.get_owned_enrollment(db, intruder, enrollment.id)


class TestDayCompleted:
    def test_zero_habits_never_complete_a_day(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        assert challenges.day_completed(db, enrollment.id, D, TZ) is False

    def test_every_habit_is_required(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        run = add_habit(db, user, enrollment, "Correr")
        read = add_habit(db, user, enrollment, "Leer")

        first = log(db, user, run, 0)
        assert first["day_completed"] is False
        db.refresh(enrollment)
        assert enrollment.completed_days == 0

        second = log(db, user, read, 0)
        assert second["day_completed"] is True
        db.refresh(enrollment)
        assert enrollment.completed_days == 1


class TestLogHabitCompletion:
    def test_three_day_challenge_is_won_on_day_three(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)

        assert log(db, user, habit, 0)["challenge_completed"] is False
        assert log(db, user, habit, 1)["challenge_completed"] is False
        result = log(db, user, habit, 2)

        assert result["challenge_completed"] is True
        assert result["current_streak"] == 3
        db.refresh(enrollment)
        assert enrollment.status == EnrollmentStatus.completed.value
        assert enrollment.completed_on is not None

        with pytest.raises(InvalidState):
            log(db, user, habit, 3)

    def test_duplicate_log_conflicts_and_keeps_one_entry(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)
        with pytest.raises(Conflict):
            log(db, user, habit, 0)
        assert db.query(HabitLog).filter(HabitLog.habit_id == habit.id).count() == 1

    def test_future_day_is_rejected(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        with pytest.raises(ValidationFailed):
            log(db, user, habit, 0, day=d(1))

    def test_day_before_start_is_rejected(self, db, user, challenge):
        enrollment = join(db, user, challenge, offset=1, start_day=d(1))
        habit = add_habit(db, user, enrollment, offset=1)
        with pytest.raises(InvalidState):
            log(db, user, habit, 1, day=d(0))

    def test_backfilled_day_counts(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        result = log(db, user, habit, 1, day=d(0))
        assert result["day_completed"] is True
        db.refresh(enrollment)
        assert enrollment.completed_days == 1
        assert enrollment.lives_remaining == 5

    def test_lazy_failure_blocks_logging(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        with pytest.raises(InvalidState):
            log(db, user, habit, 5)
        db.refresh(enrollment)
        assert enrollment.status == EnrollmentStatus.failed.value
        assert db.query(HabitLog).count() == 0

    def test_unlog_keeps_counted_progress(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)

        challenges.unlog_habit_completion(db, user, habit.id, D, TZ)
        assert db.query(HabitLog).count() == 0
        db.refresh(enrollment)
        assert enrollment.completed_days == 1

        # Volver a marcar el mismo día no lo cuenta dos veces
        log(db, user, habit, 0)
        db.refresh(enrollment)
        assert enrollment.completed_days == 1

    def test_relogging_an_older_day_is_not_counted_twice(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)
        log(db, user, habit, 1)

        challenges.unlog_habit_completion(db, user, habit.id, D, TZ)
        result = log(db, user, habit, 1, day=d(0))

        assert result["day_completed"] is True
        assert result["challenge_completed"] is False
        db.refresh(enrollment)
        assert enrollment.completed_days == 2
        assert enrollment.current_streak == 2
        assert enrollment.status == EnrollmentStatus.active.value
        assert sorted(row.day for row in enrollment.counted_days) == [d(0), d(1)]

    def test_unlog_missing_day(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        with pytest.raises(NotFound):
            challenges.unlog_habit_completion(db, user, habit.id, D, TZ)


class TestProgressAndLeave:
    def test_read_applies_idle_days_and_is_stable(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        add_habit(db, user, enrollment)

        first = challenges.get_enrollment_progress(db, user, enrollment.id, TZ, noon(d(5)))
        assert first["enrollment"].status == EnrollmentStatus.failed.value
        assert first["enrollment"].lives_remaining == 0
        version = first["enrollment"].version

        second = challenges.get_enrollment_progress(db, user, enrollment.id, TZ, noon(d(8)))
        assert second["enrollment"].missed_days == 5
        assert second["enrollment"].version == version

    def test_progress_reports_today_status(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)

        progress = challenges.get_enrollment_progress(db, user, enrollment.id, TZ, noon(D))
        assert progress["today_completed"] is True
        assert progress["habits"][0]["completed_today"] is True

        tomorrow = challenges.get_enrollment_progress(db, user, enrollment.id, TZ, noon(d(1)))
        assert tomorrow["today_completed"] is False

    def test_leave_deletes_everything_and_rejoin_is_fresh(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)

        challenges.leave_challenge(db, user, challenge.id)
        assert db.query(Enrollment).count() == 0
        assert db.query(Habit).count() == 0
        assert db.query(HabitLog).count() == 0
        assert db.query(EnrollmentDay).count() == 0

        again = join(db, user, challenge, offset=1)
        assert again.completed_days == 0
        assert again.current_streak == 0
        assert challenges.list_habits(db, user, again.id, TZ, noon(d(1))) == []

    def test_days_stay_in_the_timezone_joined_with(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        habit = add_habit(db, user, enrollment)
        log(db, user, habit, 0)
        assert enrollment.timezone == TZ

        # El perfil pasa a Nueva York: a las 08:00 en Kolkata allí aún es ayer
        new_york = "America/New_York"
        morning = day_start(TZ, D) + timedelta(hours=8)
        progress = challenges.get_enrollment_progress(db, user, enrollment.id, new_york, morning)
        assert progress["today_completed"] is True

        snapshot = challenges.snapshot_of(enrollment, challenges.calendar_of(enrollment, new_york))
        assert snapshot.start_day == D
        assert snapshot.last_completed_day == D

        result = challenges.log_habit_completion(db, user, habit.id, new_york, morning + timedelta(days=1))
        assert result["day_completed"] is True
        db.refresh(enrollment)
        assert enrollment.completed_days == 2
        assert enrollment.missed_days == 0

    def test_leave_without_enrollment(self, db, user, challenge):
        with pytest.raises(NotFound):
            challenges.leave_challenge(db, user, challenge.id)

    def test_stale_snapshot_is_rejected(self, db, user, challenge):
        enrollment = join(db, user, challenge)
        # Otra petición guarda antes que nosotros
        db.query(Enrollment).filter(Enrollment.id == enrollment.id).update(
            {Enrollment.version: Enrollment.version + 1}, synchronize_session=False
        )
        with pytest.raises(Conflict):
            challenges.refresh_progress(db, enrollment, TZ, noon(d(2)))
