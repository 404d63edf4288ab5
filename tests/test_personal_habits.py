from datetime import date, datetime

import pytz

from conftest import register


def create(client, headers, title="Leer", **extra):
    response = client.post("/user-habits", json={"title": title, **extra}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def log(client, headers, habit_id, day=None):
    body = {"date": day} if day else None
    return client.post(f"/user-habits/{habit_id}/log", json=body, headers=headers)


class TestCrud:
    def test_create_list_update_delete(self, client, user_headers):
        habit = create(client, user_headers, "Leer", description="20 páginas", color="#ffaa00")
        assert habit["archived"] is False
        assert habit["color"] == "#ffaa00"

        assert create(client, user_headers, "Meditar")["title"] == "Meditar"
        titles = [h["title"] for h in client.get("/user-habits", headers=user_headers).json()]
        assert titles == ["Meditar", "Leer"]

        patched = client.patch(f"/user-habits/{habit['id']}", json={"color": "blue"}, headers=user_headers)
        assert patched.json()["color"] == "blue"
        assert patched.json()["description"] == "20 páginas"

        assert client.delete(f"/user-habits/{habit['id']}", headers=user_headers).status_code == 200
        assert client.get(f"/user-habits/{habit['id']}", headers=user_headers).status_code == 404

    def test_duplicate_title_is_case_insensitive(self, client, user_headers):
        create(client, user_headers, "Leer")
        response = client.post("/user-habits", json={"title": "LEER"}, headers=user_headers)
        assert response.status_code == 409

    def test_archive_toggle(self, client, user_headers):
        habit = create(client, user_headers, "Leer")

        archived = client.patch(f"/user-habits/{habit['id']}/archive", headers=user_headers).json()
        assert archived["archived"] is True
        assert client.get("/user-habits", headers=user_headers).json() == []
        listed = client.get("/user-habits", params={"include_archived": True}, headers=user_headers).json()
        assert [h["id"] for h in listed] == [habit["id"]]

        assert log(client, user_headers, habit["id"]).status_code == 400

        # Con el primero archivado, el título vuelve a estar libre
        create(client, user_headers, "Leer")
        clash = client.patch(f"/user-habits/{habit['id']}/archive", headers=user_headers)
        assert clash.status_code == 409

    def test_habits_are_private(self, client, user_headers):
        habit = create(client, user_headers)
        other = register(client, email="otro@example.com", name="Otro")
        assert client.get(f"/user-habits/{habit['id']}", headers=other).status_code == 404
        assert log(client, other, habit["id"]).status_code == 404


class TestLogsAndAnalytics:
    def test_log_unlog(self, client, user_headers):
        habit = create(client, user_headers)

        first = log(client, user_headers, habit["id"])
        assert first.status_code == 201
        assert first.json()["date_completed"] == "2026-02-19T18:30:00"
        assert log(client, user_headers, habit["id"]).status_code == 409
        assert log(client, user_headers, habit["id"], "2026-02-21").status_code == 422

        detail = client.get(f"/user-habits/{habit['id']}", headers=user_headers).json()
        assert detail["completed_today"] is True

        path = f"/user-habits/{habit['id']}/log/2026-02-20"
        assert client.delete(path, headers=user_headers).status_code == 200
        assert client.delete(path, headers=user_headers).status_code == 404

    def test_analytics(self, client, clock, user_headers):
        habit = create(client, user_headers)
        clock.set_day(date(2026, 2, 22))
        for day in ("2026-02-18", "2026-02-20", "2026-02-21", "2026-02-22"):
            assert log(client, user_headers, habit["id"], day).status_code == 201

        body = client.get(f"/user-habits/{habit['id']}/analytics", headers=user_headers).json()
        analytics = body["analytics"]
        assert body["habit"]["id"] == habit["id"]
        assert analytics["current_streak"] == 3
        assert analytics["longest_streak"] == 3
        assert analytics["total_completions"] == 4
        assert analytics["completed_today"] is True
        assert analytics["last_completed_date"] == "2026-02-22"
        assert analytics["completion_rate_last_7"] == 57
        assert analytics["weekly_breakdown"][-1]["week_start"] == "2026-02-22"
        assert analytics["weekly_breakdown"][-1]["completed"] == 1
        assert analytics["monthly_breakdown"][-1] == {
            "month": "2026-02", "completed": 4, "total": 28, "completion_rate": 14
        }

    def test_summary(self, client, user_headers):
        read = create(client, user_headers, "Leer")
        create(client, user_headers, "Meditar")
        log(client, user_headers, read["id"])

        summary = client.get("/user-habits/analytics/summary", headers=user_headers).json()
        assert summary["total_habits"] == 2
        assert summary["completed_today_count"] == 1
        by_title = {item["habit"]["title"]: item for item in summary["habits"]}
        assert by_title["Leer"]["current_streak"] == 1
        assert by_title["Leer"]["completed_today"] is True
        assert by_title["Meditar"]["total_completions"] == 0

    def test_today_is_the_users_local_day(self, client, clock):
        headers = register(client, email="nora@example.com", name="Nora", timezone="America/New_York")
        habit = create(client, headers)

        # 03:00 UTC del 26 son las 22:00 del 25 en Nueva York
        clock.now = pytz.utc.localize(datetime(2026, 2, 26, 3, 0))
        assert log(client, headers, habit["id"]).status_code == 201

        analytics = client.get(f"/user-habits/{habit['id']}/analytics", headers=headers).json()["analytics"]
        assert analytics["last_completed_date"] == "2026-02-25"
        assert analytics["completed_today"] is True
