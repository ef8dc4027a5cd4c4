"""Tests for document states and transition validation."""

from cookbook.conduit.phases import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DocumentState,
    can_transition,
)


class TestStateDefinitions:
    """Test that all states are properly defined."""

    def test_all_states_exist(self):
        expected = {
            "UPLOADED", "SEGMENTED", "PARSED", "REVIEW_PENDING",
            "COMMITTED", "CORRECTED", "ARCHIVED", "FAILED",
        }
        assert {s.value for s in DocumentState} == expected

    def test_terminal_states(self):
        assert TERMINAL_STATES == {
            DocumentState.COMMITTED,
            DocumentState.ARCHIVED,
            DocumentState.FAILED,
        }

    def test_terminal_states_have_no_transitions(self):
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == set()

    def test_every_state_has_transition_entry(self):
        for state in DocumentState:
            assert state in VALID_TRANSITIONS


class TestTransitions:
    def test_uploaded_transitions(self):
        assert VALID_TRANSITIONS[DocumentState.UPLOADED] == {
            DocumentState.SEGMENTED,
            DocumentState.FAILED,
        }

    def test_parsed_routes_to_commit_or_review(self):
        assert VALID_TRANSITIONS[DocumentState.PARSED] == {
            DocumentState.REVIEW_PENDING,
            DocumentState.COMMITTED,
        }

    def test_review_leads_to_archive(self):
        assert can_transition(DocumentState.REVIEW_PENDING, DocumentState.CORRECTED)
        assert can_transition(DocumentState.CORRECTED, DocumentState.ARCHIVED)

    def test_cancelled_parse_can_fail(self):
        assert can_transition(DocumentState.SEGMENTED, DocumentState.FAILED)

    def test_no_shortcuts(self):
        assert not can_transition(DocumentState.UPLOADED, DocumentState.PARSED)
        assert not can_transition(DocumentState.REVIEW_PENDING, DocumentState.ARCHIVED)
        assert not can_transition(DocumentState.PARSED, DocumentState.FAILED)
        assert not can_transition(DocumentState.COMMITTED, DocumentState.REVIEW_PENDING)

    def test_every_path_reaches_a_terminal_state(self):
        for start in DocumentState:
            seen = set()
            frontier = [start]
            while frontier:
                state = frontier.pop()
                if state in seen:
                    continue
                seen.add(state)
                frontier.extend(VALID_TRANSITIONS[state])
            assert seen & TERMINAL_STATES
