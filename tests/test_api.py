from datetime import date
from decimal import Decimal

import pytest

from academy_crm.models import Student

pytestmark = pytest.mark.api


def cycle_payload(course, instructor, **overrides):
    payload = {
        "name": "Lego Wednesday",
        "courseId": course.id,
        "instructorId": instructor.id,
        "type": "institutional_fixed",
        "startDate": "2024-03-01",
        "dayOfWeek": "Wednesday",
        "startTime": "16:00:00",
        "endTime": "17:00:00",
        "totalMeetings": 3,
        "meetingRevenue": "400",
        "activityType": "frontal",
    }
    payload.update(overrides)
    return payload


class TestErrors:
    def test_not_found_body(self, client):
        response = client.get("/cycles/does-not-exist")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert "does-not-exist" in error["message"]

    def test_request_validation_is_400(self, client, course, instructor):
        response = client.post("/cycles", json=cycle_payload(course, instructor, endTime="15:00:00"))

        assert response.status_code == 400
        body = response.json()["error"]
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]

    def test_instructor_cannot_create_cycles(self, client, acting_user, course, instructor):
        acting_user["user"] = instructor.user

        response = client.post("/cycles", json=cycle_payload(course, instructor))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "abc-123"


class TestCycleEndpoints:
    def test_create_generates_meetings(self, client, course, instructor):
        response = client.post("/cycles", json=cycle_payload(course, instructor))

        assert response.status_code == 201
        body = response.json()
        assert body["dayOfWeek"] == "wednesday"
        assert body["durationMinutes"] == 60
        assert body["remainingMeetings"] == 3
        assert body["endDate"] == "2024-03-20"

        meetings = client.get(f"/cycles/{body['id']}/meetings").json()
        assert [m["scheduledDate"] for m in meetings] == ["2024-03-06", "2024-03-13", "2024-03-20"]

    def test_create_without_meetings_plans_end_date(self, client, course, instructor):
        response = client.post(
            "/cycles", json=cycle_payload(course, instructor, generateMeetings=False, activityType="online")
        )

        body = response.json()
        assert body["endDate"] == "2024-03-20"
        assert body["isOnline"] is True
        assert client.get(f"/cycles/{body['id']}/meetings").json() == []

    def test_detail_counts(self, client, weekly_cycle, make_registration):
        cycle, _ = weekly_cycle
        make_registration(cycle)
        make_registration(cycle, status="cancelled")

        body = client.get(f"/cycles/{cycle.id}").json()

        assert body["meetingCounts"]["scheduled"] == 4
        assert body["enrolledCount"] == 1

    def test_instructor_only_sees_own_cycles(self, client, acting_user, instructor, make_cycle):
        make_cycle()
        make_cycle(instructor_id=None, name="Unassigned")
        acting_user["user"] = instructor.user

        body = client.get("/cycles").json()

        assert body["total"] == 1
        assert body["cycles"][0]["instructorId"] == instructor.id

    def test_complete_cycle_queues_summary(self, client, weekly_cycle, enqueued_jobs):
        cycle, _ = weekly_cycle

        response = client.post(f"/cycles/{cycle.id}/complete")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert ("cycle_summary_task", (cycle.id,), f"cycle-summary:{cycle.id}") in enqueued_jobs()

    def test_generate_meetings_endpoint(self, client, make_cycle):
        cycle = make_cycle(total_meetings=2)

        body = client.post(f"/cycles/{cycle.id}/generate-meetings", json={"skipHolidays": False}).json()

        assert body["generated"] == 2
        assert body["total"] == 2

    def test_delete_releases_rooms_and_keeps_meetings(self, client, db, weekly_cycle, enqueued_jobs):
        cycle, meetings = weekly_cycle
        meetings[1].zoom_meeting_id = "777"
        meetings[2].zoom_meeting_id = "777"
        db.commit()

        response = client.delete(f"/cycles/{cycle.id}")

        assert response.status_code == 200
        assert response.json()["releasedRooms"] == 1
        assert ("delete_zoom_room_task", ("777",), "zoom-delete:777") in enqueued_jobs()
        assert client.get(f"/cycles/{cycle.id}").status_code == 404
        assert client.get("/cycles").json()["total"] == 0
        assert client.get(f"/meetings/{meetings[0].id}").status_code == 200
        assert client.post(f"/meetings/{meetings[0].id}/complete").json()["status"] == "completed"

    def test_update_clears_student_count(self, client, make_cycle):
        cycle = make_cycle(type="institutional_per_child", price_per_student=Decimal("50"), student_count=10)

        response = client.put(f"/cycles/{cycle.id}", json={"studentCount": None})

        assert response.status_code == 200
        assert response.json()["studentCount"] is None


class TestMeetingEndpoints:
    def test_complete_returns_financials(self, client, weekly_cycle):
        _, meetings = weekly_cycle

        response = client.post(f"/meetings/{meetings[0].id}/complete")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert Decimal(str(body["revenue"])) == Decimal("500")
        assert Decimal(str(body["instructorPayment"])) == Decimal("300")
        assert Decimal(str(body["profit"])) == Decimal("200")

    def test_completing_last_meeting_queues_cycle_completion(
        self, client, make_cycle, make_meeting, enqueued_jobs
    ):
        cycle = make_cycle(total_meetings=1, remaining_meetings=1)
        meeting = make_meeting(cycle, date(2024, 3, 3))

        client.post(f"/meetings/{meeting.id}/complete")

        assert ("cycle_completion_task", (cycle.id,), f"cycle-completion:{cycle.id}") in enqueued_jobs()

    def test_negative_profit_alert_needs_a_phone(
        self, client, make_cycle, make_meeting, enqueued_jobs, monkeypatch
    ):
        monkeypatch.setattr("academy_crm.tasks.ADMIN_WHATSAPP_PHONE", None)
        cycle = make_cycle(meeting_revenue=Decimal("100"), duration_minutes=120)
        first = make_meeting(cycle, date(2024, 3, 3))
        second = make_meeting(cycle, date(2024, 3, 10))

        client.post(f"/meetings/{first.id}/complete")
        assert not any(function == "send_whatsapp_task" for function, _, _ in enqueued_jobs())

        monkeypatch.setattr("academy_crm.tasks.ADMIN_WHATSAPP_PHONE", "972500000000")
        client.post(f"/meetings/{second.id}/complete")
        alerts = [job for job in enqueued_jobs() if job[0] == "send_whatsapp_task"]
        assert len(alerts) == 1
        assert alerts[0][2] == f"negative-profit:{second.id}"

    def test_postpone_queues_replacement(self, client, weekly_cycle, enqueued_jobs):
        _, meetings = weekly_cycle

        response = client.post(f"/meetings/{meetings[1].id}/postpone")

        assert response.json()["status"] == "postponed"
        function, _, job_id = enqueued_jobs()[0]
        assert function == "create_replacement_meeting_task"
        assert job_id == f"replacement:{meetings[1].id}"

    def test_recalculate_force_flag(self, client, db, weekly_cycle):
        _, meetings = weekly_cycle
        client.post(f"/meetings/{meetings[0].id}/complete")
        meetings[0].revenue = Decimal("999")
        db.commit()
        url = f"/meetings/{meetings[0].id}/recalculate"

        kept = client.post(url, params={"force": "false"}).json()
        assert Decimal(str(kept["revenue"])) == Decimal("999")

        recomputed = client.post(url).json()
        assert Decimal(str(recomputed["revenue"])) == Decimal("500")

    def test_completing_a_cancelled_meeting_conflicts(self, client, weekly_cycle):
        _, meetings = weekly_cycle
        client.post(f"/meetings/{meetings[0].id}/cancel")

        response = client.post(f"/meetings/{meetings[0].id}/complete")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_queue_outage_runs_job_after_response(self, client, admin, weekly_cycle, queue, monkeypatch):
        _, meetings = weekly_cycle
        queue.enqueue_job.side_effect = ConnectionError("redis down")
        ran = []

        async def run_inline(function, *args):
            ran.append((function, args))

        monkeypatch.setattr("academy_crm.tasks.run_task_inline", run_inline)

        response = client.post(f"/meetings/{meetings[1].id}/postpone")

        assert response.status_code == 200
        assert ran == [("create_replacement_meeting_task", (meetings[1].id, admin.id))]


class TestRegistrationEndpoints:
    def test_duplicate_registration_conflicts(self, client, db, weekly_cycle):
        cycle, _ = weekly_cycle
        student = Student(name="Yael")
        db.add(student)
        db.commit()

        first = client.post(f"/cycles/{cycle.id}/registrations", json={"studentId": student.id, "amount": "300"})
        second = client.post(f"/cycles/{cycle.id}/registrations", json={"studentId": student.id})

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"]["details"]["registrationId"] == first.json()["id"]

    def test_unknown_student(self, client, weekly_cycle):
        cycle, _ = weekly_cycle

        response = client.post(f"/cycles/{cycle.id}/registrations", json={"studentId": "nobody"})

        assert response.status_code == 404


class TestAuditLogEndpoints:
    def test_admin_reads_audit_trail(self, client, weekly_cycle):
        _, meetings = weekly_cycle
        client.post(f"/meetings/{meetings[0].id}/complete")

        body = client.get("/audit-logs", params={"entity": "Meeting"}).json()

        assert body["total"] == 1
        assert body["logs"][0]["entityId"] == meetings[0].id

    def test_managers_are_refused(self, client, acting_user, manager):
        acting_user["user"] = manager

        assert client.get("/audit-logs").status_code == 403


class TestAttendanceEndpoints:
    def test_records_are_upserted(self, client, weekly_cycle, make_registration):
        cycle, meetings = weekly_cycle
        registration = make_registration(cycle)
        url = f"/meetings/{meetings[0].id}/attendance"

        client.post(url, json={"records": [{"registrationId": registration.id, "status": "absent"}]})
        client.post(url, json={"records": [{"registrationId": registration.id, "status": "late"}]})

        records = client.get(url).json()
        assert len(records) == 1
        assert records[0]["status"] == "late"
        assert records[0]["studentName"] == "Student 1"

    def test_registration_from_another_cycle(self, client, weekly_cycle, make_cycle, make_registration):
        _, meetings = weekly_cycle
        stranger = make_registration(make_cycle(name="Other"))

        response = client.post(
            f"/meetings/{meetings[0].id}/attendance",
            json={"records": [{"registrationId": stranger.id, "status": "present"}]},
        )

        assert response.status_code == 400
