"""
Property-based tests for the approval engine.

Random sets of approved stages (not necessarily contiguous) and random
quorum vote counts are fed to the validator and the projector; the
ordering invariant and the validator/projector agreement must hold for
every one of them.
"""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from voucher_engines.approval import can_act, satisfied_stages
from voucher_engines.progress import project
from voucher_kernel.domain.progress import StageState

_SETTINGS = settings(
    max_examples=150,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)


class TestOrderingInvariant:

    @given(approved=st.sets(st.integers(1, 5)))
    @_SETTINGS
    def test_ready_implies_every_earlier_stage_approved(self, standard_variant, facts, approved):
        f = facts(approved=tuple(sorted(approved)))
        for stage in standard_variant.stages:
            readiness = can_act(f, standard_variant, stage.stage, 3)
            if readiness.is_ready:
                assert stage.stage not in approved
                assert all(s in approved for s in range(1, stage.stage))

    @given(
        approved=st.sets(st.sampled_from([1, 2, 4, 5, 6])),
        reviewers=st.integers(0, 5),
        threshold=st.integers(1, 5),
    )
    @_SETTINGS
    def test_gso_ready_implies_quorum_met(self, gso_variant, facts, approved, reviewers, threshold):
        f = facts(approved=tuple(sorted(approved)), reviewers=reviewers)
        for stage_number in (4, 5, 6):
            if can_act(f, gso_variant, stage_number, threshold).is_ready:
                assert 3 in satisfied_stages(gso_variant, f, threshold)


class TestProjectorAgreesWithValidator:

    @given(
        approved=st.sets(st.sampled_from([1, 2, 4, 5, 6])),
        reviewers=st.integers(0, 5),
        threshold=st.integers(1, 5),
    )
    @_SETTINGS
    def test_at_most_one_current_and_it_is_first_open(
        self, gso_variant, facts, approved, reviewers, threshold,
    ):
        f = facts(approved=tuple(sorted(approved)), reviewers=reviewers)
        progress = project(
            gso_variant, f.voucher, f.approval_facts, f.quorum_reviews, threshold,
        )
        states = progress.states()
        assert states.count(StageState.CURRENT) <= 1

        done = satisfied_stages(gso_variant, f, threshold)
        open_stages = [s.stage for s in gso_variant.stages if s.stage not in done]
        if open_stages:
            assert progress.current_stage.stage == open_stages[0]
        else:
            assert progress.current_stage is None

        for row in progress.stages:
            assert (row.state == StageState.COMPLETED) == (row.stage in done)

    @given(approved=st.sets(st.integers(1, 5)))
    @_SETTINGS
    def test_projection_is_idempotent(self, standard_variant, facts, approved):
        f = facts(approved=tuple(sorted(approved)))
        first = project(standard_variant, f.voucher, f.approval_facts, f.quorum_reviews, 3)
        second = project(standard_variant, f.voucher, f.approval_facts, f.quorum_reviews, 3)
        assert first == second
