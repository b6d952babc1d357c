from datetime import timedelta
from decimal import Decimal

import pytest

from clinic.core.config import settings
from tests.helpers import auth_headers, create_doctor, create_patient, next_monday


@pytest.fixture
def doctor_headers(client, db):
    create_doctor(db)
    return auth_headers(client, "doctor@example.com")


class TestDoctorProfile:

    def test_list_doctors_is_public(self, client, db):
        create_doctor(db)
        inactive = create_doctor(db, email="retired@example.com", full_name="Dr. Retired")
        inactive.is_active = False
        db.commit()

        response = client.get("/api/v1/doctors")
        assert response.status_code == 200
        assert [d["full_name"] for d in response.json()] == ["Dr. Ada Grey"]
        assert response.json()[0]["specialization_name"] == "General Practice"

    def test_get_and_update_own_profile(self, client, doctor_headers):
        response = client.get("/api/v1/doctors/me", headers=doctor_headers)
        assert response.status_code == 200
        assert response.json()["availabilities"] == []

        response = client.put(
            "/api/v1/doctors/me",
            json={"bio": "Family medicine", "consultation_fee": "175.50"},
            headers=doctor_headers,
        )
        assert response.status_code == 200
        assert response.json()["bio"] == "Family medicine"
        assert Decimal(response.json()["consultation_fee"]) == Decimal("175.50")

    def test_invalid_specialization_rejected(self, client, doctor_headers):
        response = client.put(
            "/api/v1/doctors/me", json={"specialization_id": 9999}, headers=doctor_headers
        )
        assert response.status_code == 400

    def test_patient_has_no_doctor_profile(self, client, db):
        create_patient(db)
        headers = auth_headers(client, "patient@example.com")

        response = client.get("/api/v1/doctors/me", headers=headers)
        assert response.status_code == 403


class TestAvailabilityRules:

    def test_add_list_and_delete(self, client, doctor_headers):
        response = client.post(
            "/api/v1/doctors/me/availability",
            json={"day_of_week": 0, "start_time": "09:00", "end_time": "12:00"},
            headers=doctor_headers,
        )
        assert response.status_code == 201
        rule = response.json()
        assert rule["is_recurring"] is True
        assert rule["max_appointments_per_slot"] == 1

        response = client.get("/api/v1/doctors/me/availability", headers=doctor_headers)
        assert [r["id"] for r in response.json()] == [rule["id"]]

        response = client.delete(f"/api/v1/doctors/me/availability/{rule['id']}", headers=doctor_headers)
        assert response.status_code == 200

        response = client.get("/api/v1/doctors/me/availability", headers=doctor_headers)
        assert response.json() == []

    def test_duplicate_start_conflicts(self, client, doctor_headers):
        body = {"day_of_week": 2, "start_time": "09:00", "end_time": "12:00"}
        assert client.post("/api/v1/doctors/me/availability", json=body, headers=doctor_headers).status_code == 201
        assert client.post("/api/v1/doctors/me/availability", json=body, headers=doctor_headers).status_code == 409

    def test_window_must_be_positive(self, client, doctor_headers):
        response = client.post(
            "/api/v1/doctors/me/availability",
            json={"day_of_week": 0, "start_time": "12:00", "end_time": "09:00"},
            headers=doctor_headers,
        )
        assert response.status_code == 422

    def test_one_off_rule_takes_weekday_from_date(self, client, doctor_headers):
        friday = next_monday() + timedelta(days=4)
        response = client.post(
            "/api/v1/doctors/me/availability",
            json={
                "is_recurring": False,
                "specific_date": friday.isoformat(),
                "start_time": "13:00",
                "end_time": "14:00",
            },
            headers=doctor_headers,
        )
        assert response.status_code == 201
        assert response.json()["day_of_week"] == 4

    def test_delete_unknown_rule(self, client, doctor_headers):
        response = client.delete("/api/v1/doctors/me/availability/9999", headers=doctor_headers)
        assert response.status_code == 404


class TestSlots:

    def test_slots_for_week(self, client, doctor_headers):
        client.post(
            "/api/v1/doctors/me/availability",
            json={"day_of_week": 0, "start_time": "09:00", "end_time": "10:00", "max_appointments_per_slot": 2},
            headers=doctor_headers,
        )
        doctor_id = client.get("/api/v1/doctors/me", headers=doctor_headers).json()["id"]
        monday = next_monday()

        response = client.get(
            f"/api/v1/doctors/{doctor_id}/slots",
            params={"start_date": monday.isoformat(), "end_date": (monday + timedelta(days=6)).isoformat()},
        )
        assert response.status_code == 200

        slots = response.json()
        assert len(slots) == 2
        assert slots[0]["start"].startswith(f"{monday.isoformat()}T09:00")
        assert slots[0]["max_appointments"] == 2
        assert slots[0]["booked_count"] == 0
        assert slots[0]["is_available"] is True

    def test_end_before_start_rejected(self, client, doctor_headers):
        monday = next_monday()
        response = client.get(
            "/api/v1/doctors/1/slots",
            params={"start_date": monday.isoformat(), "end_date": (monday - timedelta(days=1)).isoformat()},
        )
        assert response.status_code == 400

    def test_range_is_capped(self, client, doctor_headers):
        monday = next_monday()
        end = monday + timedelta(days=settings.SLOT_QUERY_MAX_DAYS)
        response = client.get(
            "/api/v1/doctors/1/slots",
            params={"start_date": monday.isoformat(), "end_date": end.isoformat()},
        )
        assert response.status_code == 400

    def test_unknown_doctor(self, client, test_db):
        monday = next_monday()
        response = client.get(
            "/api/v1/doctors/9999/slots",
            params={"start_date": monday.isoformat(), "end_date": monday.isoformat()},
        )
        assert response.status_code == 404
