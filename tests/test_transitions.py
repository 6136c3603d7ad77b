import pytest

from demandes.workflow.constants import (
    ARCHIVE_TRANSITIONS,
    STATUSES,
    STATUS_META,
    TRANSITION_PERMISSIONS,
    TRANSITION_REQUIREMENTS,
    VALID_TRANSITIONS,
    WORKFLOW_TRANSITIONS,
    allowed_transitions,
    available_transitions,
    can_transition,
    can_user_transition,
    check_requirements,
    is_authorized,
    is_terminal,
    missing_fields,
    transition_key,
)
from demandes.workflow.errors import MissingFieldsError

ROLES = ("STUDENT", "ADMIN", "SUPER_ADMIN", "SYSTEM")

EXPECTED_VALID = {
    ("SUBMITTED", "RECEIVED"),
    ("RECEIVED", "IN_PROGRESS"),
    ("RECEIVED", "REJECTED"),
    ("IN_PROGRESS", "AWAITING_INFO"),
    ("IN_PROGRESS", "APPROVED"),
    ("IN_PROGRESS", "REJECTED"),
    ("AWAITING_INFO", "IN_PROGRESS"),
    ("AWAITING_INFO", "REJECTED"),
    ("APPROVED", "PROCESSED"),
    ("REJECTED", "ARCHIVED"),
    ("PROCESSED", "ARCHIVED"),
}


def test_valid_set_is_the_fixed_eleven_transitions():
    assert VALID_TRANSITIONS == EXPECTED_VALID


def test_allow_list_accepts_whitelisted_transitions():
    """Cada transición del ciclo de vida debe ser aceptada."""
    for old_status, allowed_destinations in WORKFLOW_TRANSITIONS.items():
        for new_status in allowed_destinations:
            assert can_transition(old_status, new_status)


def test_disallow_pairs_outside_the_valid_set():
    """Cualquier par fuera del conjunto fijo debe rechazarse."""
    for old_status in STATUSES:
        for new_status in STATUSES:
            if (old_status, new_status) not in VALID_TRANSITIONS:
                assert not can_transition(old_status, new_status), (old_status, new_status)


@pytest.mark.parametrize("status", STATUSES)
def test_no_self_loops(status):
    assert not can_transition(status, status)


@pytest.mark.parametrize("status", STATUSES)
def test_registry_and_graph_agree_on_terminal_statuses(status):
    assert (allowed_transitions(status) == ()) == is_terminal(status)
    assert is_terminal(status) == STATUS_META[status].is_terminal


def test_terminal_statuses_are_rejected_processed_archived():
    assert {s for s in STATUSES if is_terminal(s)} == {"REJECTED", "PROCESSED", "ARCHIVED"}


def test_terminal_states_have_no_lifecycle_exits():
    for terminal in ("REJECTED", "PROCESSED", "ARCHIVED"):
        for candidate in STATUSES:
            assert not can_transition(terminal, candidate)


def test_unknown_status_never_raises():
    assert allowed_transitions("INCONNU") == ()
    assert not can_transition("INCONNU", "RECEIVED")
    assert not can_transition("SUBMITTED", "INCONNU")


def test_graph_is_acyclic_except_awaiting_info_round_trip():
    graph = {s: set(t) for s, t in WORKFLOW_TRANSITIONS.items()}
    for src, targets in ARCHIVE_TRANSITIONS.items():
        graph[src] |= set(targets)
    assert "IN_PROGRESS" in graph["AWAITING_INFO"] and "AWAITING_INFO" in graph["IN_PROGRESS"]
    graph["AWAITING_INFO"].discard("IN_PROGRESS")

    visiting, done = set(), set()

    def visit(node):
        assert node not in visiting, f"cycle through {node}"
        if node in done:
            return
        visiting.add(node)
        for nxt in graph.get(node, ()):
            visit(nxt)
        visiting.discard(node)
        done.add(node)

    for status in STATUSES:
        visit(status)


def test_every_transition_has_a_permission_entry():
    for src, dst in VALID_TRANSITIONS:
        assert transition_key(src, dst) in TRANSITION_PERMISSIONS


@pytest.mark.parametrize("transition", sorted(EXPECTED_VALID))
def test_permission_table_is_neither_empty_nor_universal(transition):
    key = transition_key(*transition)
    granted = [r for r in ROLES if is_authorized(key, r)]
    assert granted
    assert len(granted) < len(ROLES)


def test_system_only_authorized_for_post_creation_advance():
    system_keys = {k for k, roles in TRANSITION_PERMISSIONS.items() if "SYSTEM" in roles}
    assert system_keys == {"SUBMITTED->RECEIVED"}


def test_unlisted_transition_is_never_authorized():
    assert not is_authorized("RECEIVED->PROCESSED", "SUPER_ADMIN")
    assert not is_authorized(transition_key("SUBMITTED", "RECEIVED"), None)


def test_students_cannot_reject():
    assert not is_authorized("RECEIVED->REJECTED", "STUDENT")
    assert is_authorized("AWAITING_INFO->IN_PROGRESS", "STUDENT")


def test_rejection_requires_reason():
    assert missing_fields("REJECTED", {}) == ["rejection_reason"]
    assert missing_fields("REJECTED", {"rejection_reason": "   "}) == ["rejection_reason"]
    assert missing_fields("REJECTED", {"rejection_reason": "Pièce justificative manquante"}) == []


def test_awaiting_info_requires_comment():
    with pytest.raises(MissingFieldsError) as exc:
        check_requirements("AWAITING_INFO", {"admin_comment": None})
    assert exc.value.missing_fields == ["admin_comment"]
    check_requirements("AWAITING_INFO", {"admin_comment": "Merci de fournir votre carte étudiant"})


def test_optional_fields_and_missing_entries_are_trivially_satisfied():
    assert "SUBMITTED" not in TRANSITION_REQUIREMENTS
    assert missing_fields("SUBMITTED", {}) == []
    assert missing_fields("IN_PROGRESS", {}) == []
    assert missing_fields("APPROVED", {}) == []


def test_available_transitions_by_role():
    assert available_transitions("IN_PROGRESS", "ADMIN") == ["AWAITING_INFO", "APPROVED", "REJECTED"]
    assert available_transitions("IN_PROGRESS", "STUDENT") == []
    assert available_transitions("AWAITING_INFO", "STUDENT") == ["IN_PROGRESS"]
    assert available_transitions("PROCESSED", "ADMIN") == ["ARCHIVED"]
    assert available_transitions("SUBMITTED", "ADMIN") == []


def test_can_user_transition_includes_archival():
    assert can_user_transition("REJECTED", "ARCHIVED", "SUPER_ADMIN")
    assert not can_user_transition("REJECTED", "ARCHIVED", "STUDENT")
    assert not can_user_transition("RECEIVED", "PROCESSED", "ADMIN")
