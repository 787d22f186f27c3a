from quickroom.database import SessionLocal
from quickroom.models import BookingResource
from tests.helpers import auth_headers, future_day


def test_resource_crud(resources_client, admin):
    headers = auth_headers(admin)

    create_resp = resources_client.post(
        "/resources", json={"name": "Projector", "type": "AV", "total_quantity": 3}, headers=headers
    )
    assert create_resp.status_code == 201
    resource_id = create_resp.json()["id"]

    update_resp = resources_client.put(f"/resources/{resource_id}", json={"total_quantity": 4}, headers=headers)
    assert update_resp.json()["total_quantity"] == 4

    assert len(resources_client.get("/resources", headers=headers).json()) == 1
    assert resources_client.delete(f"/resources/{resource_id}", headers=headers).status_code == 204
    assert resources_client.put(f"/resources/{resource_id}", json={"name": "Gone"}, headers=headers).status_code == 404


def test_total_quantity_must_be_positive(resources_client, admin):
    response = resources_client.post(
        "/resources", json={"name": "Projector", "type": "AV", "total_quantity": 0}, headers=auth_headers(admin)
    )
    assert response.status_code == 400


def test_check_availability_counts_approved_overlaps(resources_client, student, other_student, room, make_booking, make_resource):
    day = future_day()
    projector = make_resource(total_quantity=5)
    holder = make_booking(other_student, room, day, "09:00", "10:00")
    with SessionLocal() as session:
        session.add(BookingResource(booking_id=holder.id, resource_id=projector.id, quantity_requested=3))
        session.commit()

    response = resources_client.post(
        "/resources/check-availability",
        json={
            "resources": [{"resource_id": projector.id, "quantity": 3}],
            "date": day.isoformat(),
            "start_time": "09:30",
            "end_time": "10:30",
        },
        headers=auth_headers(student),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["resources"][0] == {
        "resource_id": projector.id,
        "resource_name": "Projector",
        "requested": 3,
        "available": 2,
        "sufficient": False,
    }


def test_check_availability_unknown_resource(resources_client, student):
    response = resources_client.post(
        "/resources/check-availability",
        json={
            "resources": [{"resource_id": 42, "quantity": 1}],
            "date": future_day().isoformat(),
            "start_time": "09:00",
            "end_time": "10:00",
        },
        headers=auth_headers(student),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"
