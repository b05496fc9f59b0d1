# tests/test_ballots.py

import pytest

from rcv_node.rcv_runtime.errors import (
    CredentialLookupFailed,
    IndexOutOfRange,
    InvalidRanking,
    NotCredentialHolder,
    ProposalClosed,
)
from rcv_node.rcv_runtime.events import VoterVoted
from rcv_node.rcv_runtime.ledger import GovernanceLedger

from conftest import ADMIN, REGISTRY_ADDR, VOTER_V, VOTER_W


def _voted(ledger):
    return [e for e in ledger.events_since(0) if isinstance(e, VoterVoted)]


# ============================================================
# Happy path
# ============================================================

def test_submit_records_ballot_and_emits_event(budget):
    ballot = budget.submit_ballot(VOTER_V, 7, 0, "A", "C", "B", "D")

    assert ballot.ranks == ("A", "C", "B", "D")
    assert budget.get_ballot(0, VOTER_V) == ballot

    (ev,) = _voted(budget)
    assert ev.credential_id == 7
    assert ev.proposal_id == 0
    assert ev.voter == VOTER_V
    assert ev.ranks == ("A", "C", "B", "D")


def test_ranks_are_not_checked_against_option_labels(budget):
    ballot = budget.submit_ballot(VOTER_V, 7, 0, "zebra", "", "", "A")
    assert ballot.ranks == ("zebra", "", "", "A")


def test_get_ballot_is_none_when_never_voted(budget):
    assert budget.get_ballot(0, VOTER_V) is None
    assert budget.get_ballot(42, VOTER_V) is None


def test_empty_ranks_ballot_is_distinguishable_from_no_ballot(budget):
    budget.submit_ballot(VOTER_V, 7, 0, "", "", "", "")
    ballot = budget.get_ballot(0, VOTER_V)
    assert ballot is not None
    assert ballot.ranks == ("", "", "", "")


# ============================================================
# Overwrite semantics
# ============================================================

def test_second_submission_overwrites_first(budget):
    """
    Same caller, same proposal, two submissions:
    - only the second ranks are readable
    - two VoterVoted events, not merged
    """
    budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")
    budget.submit_ballot(VOTER_V, 7, 0, "D", "C", "B", "A")

    assert budget.get_ballot(0, VOTER_V).ranks == ("D", "C", "B", "A")
    assert [e.ranks for e in _voted(budget)] == [
        ("A", "B", "C", "D"),
        ("D", "C", "B", "A"),
    ]
    assert len(budget.ballots_for(0)) == 1


def test_ballots_are_kept_per_proposal(budget):
    budget.create_proposal(ADMIN, "Second", "w", "x", "y", "z")
    budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")
    budget.submit_ballot(VOTER_V, 7, 1, "w", "x", "y", "z")

    assert budget.get_ballot(0, VOTER_V).ranks == ("A", "B", "C", "D")
    assert budget.get_ballot(1, VOTER_V).ranks == ("w", "x", "y", "z")


def test_credential_moved_to_new_address_can_vote_again(budget, registry):
    """
    Ballots are keyed by address, not credential: the same credential
    from a new holder produces a second ballot.
    """
    budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")
    registry.transfer(7, "0xnew_holder")

    with pytest.raises(NotCredentialHolder):
        budget.submit_ballot(VOTER_V, 7, 0, "B", "A", "C", "D")

    budget.submit_ballot("0xnew_holder", 7, 0, "C", "A", "B", "D")
    assert len(budget.ballots_for(0)) == 2


# ============================================================
# Gates
# ============================================================

def test_forged_credential_is_rejected(budget):
    before = budget.to_dict()
    with pytest.raises(NotCredentialHolder) as excinfo:
        budget.submit_ballot(VOTER_W, 7, 0, "A", "B", "C", "D")
    assert excinfo.value.reason == "NotCredentialHolder"
    assert budget.to_dict() == before


def test_unminted_credential_fails_lookup(budget):
    with pytest.raises(CredentialLookupFailed):
        budget.submit_ballot(VOTER_V, 999, 0, "A", "B", "C", "D")
    assert budget.get_ballot(0, VOTER_V) is None


def test_unreachable_registry_address_fails_lookup(budget):
    budget.set_credential_registry(ADMIN, "0xnowhere")
    with pytest.raises(CredentialLookupFailed):
        budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")


def test_registry_raising_unexpected_error_maps_to_lookup_failed(budget):
    class Broken:
        def owner_of(self, credential_id):
            raise RuntimeError("node down")

    budget.register_registry(REGISTRY_ADDR, Broken())
    with pytest.raises(CredentialLookupFailed):
        budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")


def test_ownership_is_checked_at_submission_time(budget, registry):
    budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")
    registry.transfer(7, VOTER_W)
    with pytest.raises(NotCredentialHolder):
        budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")


def test_out_of_range_proposal(budget):
    with pytest.raises(IndexOutOfRange):
        budget.submit_ballot(VOTER_V, 7, 5, "A", "B", "C", "D")


def test_closed_proposal_rejects_ballots(budget):
    budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")
    budget.close_proposal(ADMIN, 0)

    with pytest.raises(ProposalClosed) as excinfo:
        budget.submit_ballot(VOTER_V, 7, 0, "D", "C", "B", "A")
    assert excinfo.value.reason == "ProposalClosed"

    # historical ballot still readable and unchanged
    assert budget.get_ballot(0, VOTER_V).ranks == ("A", "B", "C", "D")


def test_submit_succeeds_iff_open(budget):
    budget.create_proposal(ADMIN, "Second", "w", "x", "y", "z")
    budget.close_proposal(ADMIN, 1)

    budget.submit_ballot(VOTER_V, 7, 0, "A", "B", "C", "D")
    with pytest.raises(ProposalClosed):
        budget.submit_ballot(VOTER_V, 7, 1, "w", "x", "y", "z")


# ============================================================
# Strict ranking toggle
# ============================================================

@pytest.fixture
def strict(registry):
    lg = GovernanceLedger(admin=ADMIN, registry_address=REGISTRY_ADDR, strict_ranking=True)
    lg.register_registry(REGISTRY_ADDR, registry)
    lg.create_proposal(ADMIN, "Budget", "A", "B", "C", "D")
    return lg


@pytest.mark.parametrize(
    "ranks",
    [
        ("A", "A", "B", "C"),
        ("A", "B", "C", ""),
        ("A", "B", "C", "   "),
    ],
)
def test_strict_ranking_rejects_empty_or_repeated(strict, ranks):
    with pytest.raises(InvalidRanking):
        strict.submit_ballot(VOTER_V, 7, 0, *ranks)
    assert strict.get_ballot(0, VOTER_V) is None
    assert _voted(strict) == []


def test_strict_ranking_accepts_distinct_ranks(strict):
    strict.submit_ballot(VOTER_V, 7, 0, "B", "A", "D", "C")
    assert strict.get_ballot(0, VOTER_V).ranks == ("B", "A", "D", "C")


def test_loose_ranking_is_the_default(budget):
    assert budget.strict_ranking is False
    budget.submit_ballot(VOTER_V, 7, 0, "A", "A", "A", "A")
