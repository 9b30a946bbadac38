UNACTED = "unacted"
ONE_SIDED_LIKE = "one_sided_like"
MATCHED = "matched"
PASSED = "passed"

PAIR_STATES = frozenset({UNACTED, ONE_SIDED_LIKE, MATCHED, PASSED})


def transition_pair_state(current: str, action: str, reciprocal_like: bool = False) -> str:
    """State of a pair after the sender performs `action`.

    `reciprocal_like` is whether the receiver already likes the sender.
    Matched pairs stay matched whatever happens afterwards.
    """
    if current == MATCHED:
        return MATCHED

    if action == "like":
        if reciprocal_like:
            return MATCHED
        return ONE_SIDED_LIKE

    if action == "super_like":
        if current == UNACTED:
            return ONE_SIDED_LIKE
        return current

    if action == "pass":
        return PASSED

    return current
