from __future__ import annotations

from dataclasses import replace

from fastapi.testclient import TestClient

from app import create_app
from backend.utils.config import get_settings


def test_startup_seeds_demo_period_that_auto_assigns(tmp_path):
    settings = replace(
        get_settings(),
        database_path=tmp_path / "startup.db",
        password_hash_iterations=1000,
        seed_demo_data=True,
        demo_password="demo-pass",
    )

    with TestClient(create_app(settings)) as client:
        login = client.post(
            "/login",
            json={"email": "admin@example.edu", "password": "demo-pass"},
        )
        assert login.status_code == 200
        headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

        periods = client.get("/periods", headers=headers).json()
        assert len(periods) == 1
        period_id = periods[0]["id"]

        response = client.post(f"/periods/{period_id}/auto-assign", headers=headers)
        assert response.status_code == 200
        payload = response.json()
        assert payload["assigned"] == 4
        assert payload["confirmed"] == 4
        assert payload["total_unassigned"] == 5
        assert len(payload["skipped_registration_ids"]) == 1

        lecturers = client.get(f"/periods/{period_id}/lecturers", headers=headers).json()
        slots = {row["lecturer_name"]: row["slots_remaining"] for row in lecturers}
        assert slots == {"Hoa Le": 0, "Lan Nguyen": 1, "Minh Tran": 1}

        again = client.post(f"/periods/{period_id}/auto-assign", headers=headers)
        assert again.json()["total_unassigned"] == 1
