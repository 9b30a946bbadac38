import json

from affinity.services.events import ACTIVITY_MATCH_CREATED, log_user_activity


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params):
        self.calls.append((str(stmt), params))


def test_log_user_activity_inserts_expected_payload_shape():
    db = FakeDB()
    log_user_activity(
        db=db,
        user_id="00000000-0000-0000-0000-000000000123",
        activity_type=ACTIVITY_MATCH_CREATED,
        data={"matched_user_id": "00000000-0000-0000-0000-000000000456"},
    )
    assert len(db.calls) == 1
    sql, params = db.calls[0]
    assert "INSERT INTO user_activity" in sql
    assert params["activity_type"] == "MATCH_CREATED"
    assert params["user_id"] == "00000000-0000-0000-0000-000000000123"
    assert json.loads(params["data"]) == {"matched_user_id": "00000000-0000-0000-0000-000000000456"}


def test_log_user_activity_defaults_to_empty_data():
    db = FakeDB()
    log_user_activity(db, "00000000-0000-0000-0000-000000000123", "LIKE_SENT")
    assert json.loads(db.calls[0][1]["data"]) == {}
