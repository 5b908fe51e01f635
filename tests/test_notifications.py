"""
Test suite for notifications: budget alerts raised once per level,
listing with the unread filter, and marking as read.
"""

from datetime import datetime
from unittest.mock import MagicMock

from bson import ObjectId

from conftest import USER_ID, make_budget, make_cursor
from notifications import notify_budget_threshold


def make_notification(is_read=False, type="budget_warning"):
    return {
        "_id": ObjectId(),
        "user_id": USER_ID,
        "type": type,
        "title": "Budget warning",
        "message": "You have used 85% of your monthly budget for Food.",
        "data": {},
        "is_read": is_read,
        "read_at": None,
        "created_at": datetime(2024, 3, 20),
        "updated_at": datetime(2024, 3, 20),
    }


class TestBudgetAlerts:

    def test_good_status_raises_nothing(self, mock_db):
        budget = make_budget(ObjectId(), 100, "2024-03-01", "2024-03-31")

        field = notify_budget_threshold(mock_db, budget, {"status": "good", "percentageUsed": 40})

        assert field is None
        mock_db["notification"].insert_one.assert_not_called()

    def test_exceeded_creates_alert(self, mock_db):
        budget = make_budget(ObjectId(), 100, "2024-03-01", "2024-03-31")

        field = notify_budget_threshold(mock_db, budget, {"status": "exceeded", "percentageUsed": 125},
                                        category_name="Food & Dining")

        assert field == "last_exceeded_alert"
        doc = mock_db["notification"].insert_one.call_args[0][0]
        assert doc["type"] == "budget_exceeded"
        assert doc["title"] == "Budget exceeded"
        assert "125%" in doc["message"]
        assert "Food & Dining" in doc["message"]
        assert doc["data"] == {"budgetId": str(budget["_id"]), "categoryId": budget["category_id"],
                               "percentageUsed": 125}
        assert doc["is_read"] is False

    def test_level_reported_only_once(self, mock_db):
        budget = make_budget(ObjectId(), 100, "2024-03-01", "2024-03-31",
                             notifications={"enabled": True, "last_warning_alert": datetime(2024, 3, 10)})

        field = notify_budget_threshold(mock_db, budget, {"status": "warning", "percentageUsed": 85})

        assert field is None
        mock_db["notification"].insert_one.assert_not_called()

    def test_next_level_still_reported(self, mock_db):
        budget = make_budget(ObjectId(), 100, "2024-03-01", "2024-03-31",
                             notifications={"enabled": True, "last_warning_alert": datetime(2024, 3, 10)})

        field = notify_budget_threshold(mock_db, budget, {"status": "critical", "percentageUsed": 97})

        assert field == "last_critical_alert"

    def test_disabled_alerts(self, mock_db):
        budget = make_budget(ObjectId(), 100, "2024-03-01", "2024-03-31", notifications={"enabled": False})

        field = notify_budget_threshold(mock_db, budget, {"status": "exceeded", "percentageUsed": 150})

        assert field is None
        mock_db["notification"].insert_one.assert_not_called()


class TestNotificationRoutes:

    def test_list_unread(self, client, mock_db):
        cursor = make_cursor([make_notification(), make_notification()])
        mock_db["notification"].find.return_value = cursor
        mock_db["notification"].count_documents.return_value = 2

        response = client.get('/notifications?unread=true')

        assert response.status_code == 200
        body = response.json()
        assert len(body["notifications"]) == 2
        assert body["notifications"][0]["isRead"] is False
        assert body["pagination"]["total"] == 2
        assert mock_db["notification"].find.call_args[0][0] == {"user_id": USER_ID, "is_read": False}
        cursor.sort.assert_called_with("created_at", -1)

    def test_list_all(self, client, mock_db):
        client.get('/notifications')
        assert mock_db["notification"].find.call_args[0][0] == {"user_id": USER_ID}

    def test_mark_read(self, client, mock_db):
        doc = dict(make_notification(), is_read=True, read_at=datetime(2024, 3, 21))
        mock_db["notification"].update_one.return_value = MagicMock(matched_count=1)
        mock_db["notification"].find_one.return_value = doc

        response = client.put(f'/notifications/{doc["_id"]}/read')

        assert response.status_code == 200
        assert response.json()["notification"]["isRead"] is True
        query, update = mock_db["notification"].update_one.call_args[0]
        assert query == {"_id": doc["_id"], "user_id": USER_ID}
        assert update["$set"]["is_read"] is True

    def test_mark_read_missing(self, client, mock_db):
        mock_db["notification"].update_one.return_value = MagicMock(matched_count=0)

        response = client.put(f'/notifications/{ObjectId()}/read')

        assert response.status_code == 404
        assert response.json()["detail"] == "Notification not found"

    def test_mark_all_read(self, client, mock_db):
        mock_db["notification"].update_many.return_value = MagicMock(modified_count=2)

        response = client.put('/notifications/read-all')

        assert response.status_code == 200
        assert response.json()["message"] == "All notifications marked as read"
        query = mock_db["notification"].update_many.call_args[0][0]
        assert query == {"user_id": USER_ID, "is_read": False}
