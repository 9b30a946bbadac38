import threading

import pytest

from affinity.errors import InvalidOperationError, NotFoundError
from affinity.services.compatibility import pair_key
from affinity.services.notifications import NOTIFY_NEW_LIKE, NOTIFY_NEW_MATCH, NOTIFY_SUPER_LIKE
from affinity.services.state_machine import MATCHED, ONE_SIDED_LIKE, PASSED

from conftest import ALICE, BOB, CAROL


@pytest.fixture
def people(repo):
    for uid in (ALICE, BOB, CAROL):
        repo.add_profile(uid)
    return repo


def _outbox_types(repo, user_id):
    return sorted(n["type"] for n in repo.outbox.values() if n["user_id"] == user_id)


def test_one_sided_like_notifies_receiver(services, people):
    result = services.matches.like(ALICE, BOB)

    assert result.state == ONE_SIDED_LIKE
    assert result.is_match is False
    assert result.as_dict()["match"] is None
    assert (ALICE, BOB) in people.likes
    assert _outbox_types(people, BOB) == [NOTIFY_NEW_LIKE]
    assert people.activity[-1]["type"] == "LIKE_SENT"


def test_duplicate_like_is_rejected(services, people):
    services.matches.like(ALICE, BOB)
    with pytest.raises(InvalidOperationError) as exc:
        services.matches.like(ALICE, BOB)
    assert exc.value.code == "already_liked"


def test_mutual_like_creates_single_match_and_conversation(services, people):
    services.matches.like(ALICE, BOB)
    result = services.matches.like(BOB, ALICE)

    assert result.state == MATCHED
    assert result.is_match is True
    assert len(people.matches) == 1
    match = people.matches[pair_key(ALICE, BOB)]
    assert result.match_id == match["match_id"]
    assert result.conversation_id == match["conversation_id"]
    assert _outbox_types(people, ALICE) == [NOTIFY_NEW_MATCH]
    assert _outbox_types(people, BOB) == [NOTIFY_NEW_LIKE, NOTIFY_NEW_MATCH]
    assert sum(1 for a in people.activity if a["type"] == "MATCH_CREATED") == 2


def test_racing_reciprocal_likes_create_exactly_one_match(services, people):
    barrier = threading.Barrier(2)
    results = {}
    errors = []

    def _like(sender, receiver):
        barrier.wait()
        try:
            results[sender] = services.matches.like(sender, receiver)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_like, args=pair) for pair in ((ALICE, BOB), (BOB, ALICE))]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert errors == []
    assert len(people.matches) == 1
    matched = [r for r in results.values() if r.is_match]
    assert matched
    assert {r.match_id for r in matched} == {people.matches[pair_key(ALICE, BOB)]["match_id"]}
    assert len([n for n in people.outbox.values() if n["type"] == NOTIFY_NEW_MATCH]) == 2


def test_like_checks(services, people):
    with pytest.raises(InvalidOperationError) as exc:
        services.matches.like(ALICE, ALICE)
    assert exc.value.code == "self_action"

    with pytest.raises(NotFoundError):
        services.matches.like(ALICE, "00000000-0000-0000-0000-0000000000ff")

    people.add_block(BOB, ALICE)
    with pytest.raises(InvalidOperationError) as exc:
        services.matches.like(ALICE, BOB)
    assert exc.value.code == "blocked"
    assert (ALICE, BOB) not in people.likes


def test_notification_failure_does_not_fail_the_like(services, people):
    people.fail.add("enqueue_notification")
    services.matches.like(ALICE, BOB)
    result = services.matches.like(BOB, ALICE)

    assert result.is_match is True
    assert people.outbox == {}


def test_super_like_records_like_without_matching(services, people):
    people.add_like(BOB, ALICE)
    result = services.matches.super_like(ALICE, BOB)

    assert result.state == ONE_SIDED_LIKE
    assert result.is_match is False
    assert people.matches == {}
    assert (ALICE, BOB) in people.likes
    assert (ALICE, BOB) in people.super_likes
    assert _outbox_types(people, BOB) == [NOTIFY_SUPER_LIKE]


def test_like_after_super_like_completes_match(services, people):
    services.matches.super_like(ALICE, BOB)
    result = services.matches.like(BOB, ALICE)
    assert result.is_match is True
    assert len(people.matches) == 1


def test_duplicate_super_like_is_rejected(services, people):
    services.matches.super_like(ALICE, BOB)
    with pytest.raises(InvalidOperationError) as exc:
        services.matches.super_like(ALICE, BOB)
    assert exc.value.code == "already_super_liked"


def test_super_like_blocked_pair(services, people):
    people.add_block(ALICE, BOB)
    with pytest.raises(InvalidOperationError):
        services.matches.super_like(ALICE, BOB)


def test_pass_is_idempotent(services, people):
    first = services.matches.pass_profile(ALICE, BOB)
    second = services.matches.pass_profile(ALICE, BOB)

    assert first.state == PASSED
    assert first.already_passed is False
    assert second.already_passed is True
    assert people.passes == {(ALICE, BOB)}


def test_pass_after_match_keeps_the_match(services, people):
    services.matches.like(ALICE, BOB)
    services.matches.like(BOB, ALICE)

    result = services.matches.pass_profile(ALICE, BOB)
    assert result.state == MATCHED
    assert pair_key(ALICE, BOB) in people.matches


def test_pass_self_is_rejected(services, people):
    with pytest.raises(InvalidOperationError):
        services.matches.pass_profile(ALICE, ALICE)


def test_who_liked_me_lists_newest_first(services, people):
    services.matches.like(BOB, ALICE)
    services.matches.super_like(CAROL, ALICE)

    page = services.matches.who_liked_me(ALICE)
    assert page["total"] == 2
    assert [p["user_id"] for p in page["profiles"]] == [CAROL, BOB]
    assert page["profiles"][0]["is_super_like"] is True

    limited = services.matches.who_liked_me(ALICE, limit=1, offset=1)
    assert [p["user_id"] for p in limited["profiles"]] == [BOB]


def test_list_matches_reports_counterpart(services, people):
    services.matches.like(ALICE, BOB)
    services.matches.like(BOB, ALICE)
    services.matches.like(CAROL, ALICE)
    services.matches.like(ALICE, CAROL)

    page = services.matches.list_matches(ALICE, limit=500)
    assert page["total"] == 2
    assert [m["user_id"] for m in page["matches"]] == [CAROL, BOB]


def test_retry_after_failed_match_step_completes_the_match(services, people):
    services.matches.like(BOB, ALICE)
    people.fail.add("create_match_if_mutual")
    with pytest.raises(RuntimeError):
        services.matches.like(ALICE, BOB)
    assert (ALICE, BOB) in people.likes
    assert people.matches == {}

    people.fail.clear()
    with pytest.raises(InvalidOperationError) as exc:
        services.matches.like(ALICE, BOB)
    assert exc.value.code == "already_liked"
    assert pair_key(ALICE, BOB) in people.matches
    assert _outbox_types(people, ALICE) == [NOTIFY_NEW_LIKE, NOTIFY_NEW_MATCH]
    assert _outbox_types(people, BOB) == [NOTIFY_NEW_MATCH]

    with pytest.raises(InvalidOperationError):
        services.matches.like(ALICE, BOB)
    assert len(people.matches) == 1
    assert len([n for n in people.outbox.values() if n["type"] == NOTIFY_NEW_MATCH]) == 2


def test_duplicate_like_on_blocked_pair_does_not_match(services, people):
    people.add_like(BOB, ALICE)
    people.add_like(ALICE, BOB)
    people.add_block(BOB, ALICE)

    with pytest.raises(InvalidOperationError) as exc:
        services.matches.like(ALICE, BOB)
    assert exc.value.code == "already_liked"
    assert people.matches == {}


def test_super_like_records_both_activities(services, people):
    services.matches.super_like(ALICE, BOB)
    assert [a["type"] for a in people.activity] == ["LIKE_SENT", "SUPER_LIKE_SENT"]


def test_super_like_after_like_adds_only_super_like_activity(services, people):
    services.matches.like(ALICE, BOB)
    services.matches.super_like(ALICE, BOB)
    assert [a["type"] for a in people.activity] == ["LIKE_SENT", "SUPER_LIKE_SENT"]


def test_pass_after_like_keeps_the_like(services, people):
    services.matches.like(ALICE, BOB)
    result = services.matches.pass_profile(ALICE, BOB)

    assert result.state == PASSED
    assert (ALICE, BOB) in people.likes
    assert (ALICE, BOB) in people.passes
