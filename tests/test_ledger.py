from datetime import date, datetime

import pytest

import ledger
from conftest import TZ, make_user
from errors import Conflict, NotFound
from models import PersonalHabit, PersonalHabitLog

DAY = date(2026, 2, 26)


@pytest.fixture
def habit(db):
    user = make_user(db)
    habit = PersonalHabit(user_id=user.id, title="Leer")
    db.add(habit)
    db.commit()
    return habit


def count_logs(db, habit):
    return db.query(PersonalHabitLog).filter(PersonalHabitLog.habit_id == habit.id).count()


class TestRecord:
    def test_stores_local_midnight_in_utc(self, db, habit):
        log = ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        db.commit()
        assert log.date_completed == datetime(2026, 2, 25, 18, 30)

    def test_second_record_for_the_same_day_conflicts(self, db, habit):
        ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        db.commit()

        with pytest.raises(Conflict) as exc_info:
            ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        assert exc_info.value.context == {"date": "2026-02-26"}
        assert count_logs(db, habit) == 1

    def test_same_utc_date_can_be_two_local_days(self, db, habit):
        ledger.record(db, PersonalHabitLog, habit.id, date(2026, 2, 25), "UTC")
        ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        db.commit()
        assert count_logs(db, habit) == 2

    def test_concurrent_insert_becomes_conflict(self, db, habit, monkeypatch):
        db.add(PersonalHabitLog(habit_id=habit.id, date_completed=datetime(2026, 2, 25, 18, 30)))
        db.commit()

        # La otra petición guardó entre nuestra consulta y el flush
        monkeypatch.setattr(ledger, "find_log", lambda *args: None)
        with pytest.raises(Conflict) as exc_info:
            ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        assert exc_info.value.context == {"date": "2026-02-26"}
        monkeypatch.undo()

        # La sesión sigue sirviendo y solo hay un registro
        assert count_logs(db, habit) == 1
        assert ledger.find_log(db, PersonalHabitLog, habit.id, DAY, TZ) is not None


class TestRemoveAndQueries:
    def test_remove_missing_day_is_not_found(self, db, habit):
        with pytest.raises(NotFound):
            ledger.remove(db, PersonalHabitLog, habit.id, DAY, TZ)

    def test_remove_then_record_again(self, db, habit):
        ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        db.commit()
        ledger.remove(db, PersonalHabitLog, habit.id, DAY, TZ)
        db.commit()
        assert ledger.find_log(db, PersonalHabitLog, habit.id, DAY, TZ) is None
        ledger.record(db, PersonalHabitLog, habit.id, DAY, TZ)
        db.commit()
        assert count_logs(db, habit) == 1

    def test_list_days_and_logged_on(self, db, habit):
        for day in (date(2026, 2, 24), DAY):
            ledger.record(db, PersonalHabitLog, habit.id, day, TZ)
        db.commit()

        assert ledger.list_days(db, PersonalHabitLog, habit.id, TZ) == {date(2026, 2, 24), DAY}
        assert ledger.habits_logged_on(db, PersonalHabitLog, [habit.id, 999], DAY, TZ) == {habit.id}
        assert ledger.habits_logged_on(db, PersonalHabitLog, [], DAY, TZ) == set()
