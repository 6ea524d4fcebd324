"""
餐次相关API测试
"""

from datetime import date

import pytest

API = "/api/v1"


@pytest.fixture
def manager(auth_headers, event_id):
    return auth_headers(user_id=1, managed_event_ids=[event_id])


class TestMealSlotAPI:
    """餐次列表与调整API测试"""

    def test_list_meals_reconciles(self, client, manager, event_id):
        response = client.get(f"{API}/events/{event_id}/meals", headers=manager)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert len(data["data"]) == 15
        assert data["data"][0]["date"] == "2024-07-08"
        assert data["data"][0]["phases"] == ["SETUP"]

    def test_requires_token(self, client, event_id):
        response = client.get(f"{API}/events/{event_id}/meals")

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTHENTICATION_REQUIRED"

    def test_requires_manager(self, client, auth_headers, event_id):
        response = client.get(f"{API}/events/{event_id}/meals", headers=auth_headers(user_id=2))

        assert response.status_code == 403
        assert response.json()["error_code"] == "PERMISSION_DENIED"

    def test_invalid_token(self, client, event_id):
        response = client.get(f"{API}/events/{event_id}/meals", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_update_meal(self, client, manager, event_id):
        meal_id = client.get(f"{API}/events/{event_id}/meals", headers=manager).json()["data"][0]["id"]

        response = client.patch(
            f"{API}/events/{event_id}/meals/{meal_id}",
            json={"enabled": False, "phases": ["SETUP", "EVENT"]},
            headers=manager,
        )

        assert response.status_code == 200
        assert response.json()["data"]["enabled"] is False
        assert response.json()["data"]["phases"] == ["SETUP", "EVENT"]
        assert response.json()["data"]["updated_at"] is not None

    def test_update_meal_empty_phases(self, client, manager, event_id):
        meal_id = client.get(f"{API}/events/{event_id}/meals", headers=manager).json()["data"][0]["id"]

        response = client.patch(
            f"{API}/events/{event_id}/meals/{meal_id}", json={"phases": []}, headers=manager)

        assert response.status_code == 422

    def test_unknown_event(self, client, auth_headers):
        response = client.get(f"{API}/events/999/meals", headers=auth_headers(managed_event_ids=[999]))

        assert response.status_code == 404
        assert response.json()["error_code"] == "EVENT_NOT_FOUND"


class TestValidationAPI:
    """扫码核销API测试"""

    @pytest.fixture
    def volunteer_lunch(self, client, factory, manager, event_id):
        volunteer_id = factory.volunteer(event_id)
        views = client.get(
            f"{API}/events/{event_id}/volunteers/{volunteer_id}/meals", headers=manager).json()["data"]
        lunch = next(v for v in views if v["date"] == "2024-07-10" and v["meal_type"] == "LUNCH")
        return lunch["meal_id"], lunch["selection_id"]

    def test_validate_twice(self, client, manager, event_id, volunteer_lunch):
        meal_id, selection_id = volunteer_lunch
        url = f"{API}/events/{event_id}/meals/{meal_id}/validate"

        first = client.post(url, json={"type": "volunteer", "id": selection_id}, headers=manager)
        second = client.post(url, json={"type": "volunteer", "id": selection_id}, headers=manager)

        assert first.status_code == 200
        assert first.json()["consumed_at"]
        assert second.status_code == 400
        assert second.json()["error_code"] == "ALREADY_VALIDATED"
        assert "consumed_at" in second.json()["details"]

    def test_validate_not_eligible(self, client, factory, manager, event_id):
        meals = client.get(f"{API}/events/{event_id}/meals", headers=manager).json()["data"]
        item_id = factory.order_item(event_id, factory.tier(event_id))

        response = client.post(
            f"{API}/events/{event_id}/meals/{meals[0]['id']}/validate",
            json={"type": "participant", "id": item_id},
            headers=manager,
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_ELIGIBLE"

    def test_validate_unknown_type(self, client, manager, event_id, volunteer_lunch):
        meal_id, selection_id = volunteer_lunch

        response = client.post(
            f"{API}/events/{event_id}/meals/{meal_id}/validate",
            json={"type": "staff", "id": selection_id},
            headers=manager,
        )

        assert response.status_code == 422

    def test_unvalidate(self, client, manager, event_id, volunteer_lunch):
        meal_id, selection_id = volunteer_lunch
        body = {"type": "volunteer", "id": selection_id}

        not_yet = client.post(f"{API}/events/{event_id}/meals/{meal_id}/unvalidate", json=body, headers=manager)
        client.post(f"{API}/events/{event_id}/meals/{meal_id}/validate", json=body, headers=manager)
        undone = client.post(f"{API}/events/{event_id}/meals/{meal_id}/unvalidate", json=body, headers=manager)

        assert not_yet.status_code == 400
        assert not_yet.json()["error_code"] == "NOT_VALIDATED"
        assert undone.status_code == 200

    def test_stats_pending_search(self, client, manager, event_id, volunteer_lunch):
        meal_id, selection_id = volunteer_lunch
        base = f"{API}/events/{event_id}/meals/{meal_id}"

        pending = client.get(f"{base}/pending", headers=manager).json()
        client.post(f"{base}/validate", json={"type": "volunteer", "id": selection_id}, headers=manager)
        stats = client.get(f"{base}/stats", headers=manager).json()["data"]
        search = client.get(f"{base}/search", params={"q": "mar"}, headers=manager).json()

        assert pending["count"] == 1
        assert pending["results"][0]["unique_id"] == f"volunteer-{selection_id}"
        assert stats["total"] == 1
        assert stats["percentage"] == 100
        assert search["count"] == 1
        assert search["results"][0]["consumed_at"] is not None


class TestParticipantMealsAPI:
    """参与者餐次API测试"""

    def test_volunteer_reads_own_meals(self, client, factory, auth_headers, event_id):
        volunteer_id = factory.volunteer(event_id, setup=True, event=False)

        response = client.get(
            f"{API}/events/{event_id}/volunteers/{volunteer_id}/meals",
            headers=auth_headers(user_id=5, volunteer_ids=[volunteer_id]),
        )

        assert response.status_code == 200
        assert len(response.json()["data"]) == 6

    def test_other_volunteer_forbidden(self, client, factory, auth_headers, event_id):
        volunteer_id = factory.volunteer(event_id)

        response = client.get(
            f"{API}/events/{event_id}/volunteers/{volunteer_id}/meals",
            headers=auth_headers(user_id=5, volunteer_ids=[volunteer_id + 100]),
        )

        assert response.status_code == 403

    def test_pending_volunteer_not_eligible(self, client, factory, manager, event_id):
        volunteer_id = factory.volunteer(event_id, status="PENDING")

        response = client.get(f"{API}/events/{event_id}/volunteers/{volunteer_id}/meals", headers=manager)

        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_ELIGIBLE"

    def test_artist_declines_meal(self, client, factory, auth_headers, event_id):
        artist_id = factory.artist(event_id)
        headers = auth_headers(user_id=6, artist_ids=[artist_id])
        views = client.get(f"{API}/events/{event_id}/artists/{artist_id}/meals", headers=headers).json()["data"]

        response = client.patch(
            f"{API}/events/{event_id}/selections/artist/{views[0]['selection_id']}",
            json={"accepted": False},
            headers=headers,
        )
        forbidden = client.patch(
            f"{API}/events/{event_id}/selections/artist/{views[0]['selection_id']}",
            json={"after_show": True},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["accepted"] is False
        assert forbidden.status_code == 403

    def test_manager_sets_after_show(self, client, factory, manager, event_id):
        artist_id = factory.artist(event_id)
        views = client.get(f"{API}/events/{event_id}/artists/{artist_id}/meals", headers=manager).json()["data"]

        response = client.patch(
            f"{API}/events/{event_id}/selections/artist/{views[-1]['selection_id']}",
            json={"after_show": True},
            headers=manager,
        )

        assert response.status_code == 200


class TestCateringAPI:
    """备餐报表API测试"""

    def test_report_and_participants(self, client, factory, manager, event_id):
        volunteer_id = factory.volunteer(event_id, dietary="VEGAN")
        client.get(f"{API}/events/{event_id}/volunteers/{volunteer_id}/meals", headers=manager)

        report = client.get(f"{API}/events/{event_id}/catering/2024-07-11", headers=manager).json()["data"]
        listing = client.get(
            f"{API}/events/{event_id}/meals/participants", params={"size": 5}, headers=manager).json()["data"]

        assert report["summary"]["date"] == "2024-07-11"
        assert report["summary"]["dietary_counts"] == {"VEGAN": 3}
        assert listing["total"] == 9
        assert listing["pages"] == 2
        assert len(listing["items"]) == 5

    def test_invalid_date(self, client, manager, event_id):
        response = client.get(f"{API}/events/{event_id}/catering/not-a-date", headers=manager)

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_PERIOD"

    def test_export(self, client, manager, event_id):
        response = client.get(f"{API}/events/{event_id}/catering/{date(2024, 7, 10)}/export", headers=manager)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
        assert "catering_" in response.headers["content-disposition"]
