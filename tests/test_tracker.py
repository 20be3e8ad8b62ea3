"""
Tests for the decision tracker and cost simulation.
"""

import asyncio

import pytest
from pydantic import ValidationError as PydanticValidationError

from atelier.core.tracker import DecisionTracker
from atelier.exceptions import DecisionGraphError, SessionNotFoundError, ValidationError
from atelier.models.config import BudgetConfig
from atelier.models.costs import AlertType, BudgetCategory, RiskLevel
from atelier.models.decisions import DecisionStatus
from atelier.models.errors import (
    ErrorCategory,
    ErrorClassification,
    ErrorReport,
    ErrorSeverity,
)
from atelier.models.session import CreativePhase


class TestSessionLifecycle:
    """Tests for session initialization and reset."""

    @pytest.mark.asyncio
    async def test_initialize_session(self, tracker):
        """Test a new session splits its budget across categories."""
        record = await tracker.initialize_session("s1", 1000, "en")
        simulation = record.cost_simulation
        assert simulation.budget.total == 1000
        assert simulation.budget.remaining == 1000
        assert simulation.budget.allocated == 0
        assert simulation.breakdown[BudgetCategory.CONSULTATION].budgeted == pytest.approx(250)
        assert simulation.breakdown[BudgetCategory.PROJECT_MANAGEMENT].budgeted == pytest.approx(50)
        assert simulation.projections.estimated_total == 1000
        assert simulation.roi.estimated_value == pytest.approx(2500)
        assert record.continuity.current_phase == CreativePhase.STRATEGY_ANALYSIS

    @pytest.mark.asyncio
    async def test_initialize_rejects_bad_input(self, tracker):
        """Test invalid budget, locale and id are rejected."""
        with pytest.raises(ValidationError):
            await tracker.initialize_session("s1", 0)
        with pytest.raises(ValidationError):
            await tracker.initialize_session("s1", 100, "fr")
        with pytest.raises(ValidationError):
            await tracker.initialize_session("", 100)

    @pytest.mark.asyncio
    async def test_reinitialize_replaces_session(self, tracker, decision_fields):
        """Test initializing an existing id starts it afresh."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields())
        record = await tracker.initialize_session("s1", 2000)
        assert record.decisions == []
        assert (await tracker.get_session("s1")).cost_simulation.budget.total == 2000

    @pytest.mark.asyncio
    async def test_reinitialize_drops_error_reports(self, tracker, memory_store):
        """Test a re-initialized session does not inherit old error reports."""
        await tracker.initialize_session("s1", 1000)
        memory_store.add_error_report(ErrorReport(
            session_id="s1",
            error_name="ValidationError",
            message="missing field",
            classification=ErrorClassification(
                category=ErrorCategory.VALIDATION,
                severity=ErrorSeverity.LOW,
                recoverable=False,
                user_action_required=True,
            ),
        ))

        await tracker.initialize_session("s1", 1000)
        snapshot = await tracker.export_session("s1")
        assert snapshot.error_reports == []

    @pytest.mark.asyncio
    async def test_reset_session(self, tracker):
        """Test reset deletes the session."""
        await tracker.initialize_session("s1", 1000)
        assert await tracker.reset_session("s1") is True
        assert await tracker.reset_session("s1") is False
        with pytest.raises(SessionNotFoundError):
            await tracker.get_session("s1")

    @pytest.mark.asyncio
    async def test_session_locks_released(self, tracker, memory_store, decision_fields):
        """Test reset and unknown sessions leave no locks behind."""
        for i in range(5):
            await tracker.initialize_session(f"s{i}", 1000)
            await tracker.reset_session(f"s{i}")
        with pytest.raises(SessionNotFoundError):
            await tracker.track_decision("missing", decision_fields())
        assert memory_store._locks == {}
        assert memory_store._holders == {}

    @pytest.mark.asyncio
    async def test_unknown_session(self, tracker, decision_fields):
        """Test operations on an unknown session raise."""
        with pytest.raises(SessionNotFoundError):
            await tracker.track_decision("missing", decision_fields())
        with pytest.raises(SessionNotFoundError):
            await tracker.get_cost_simulation("missing")


class TestTrackDecision:
    """Tests for tracking decisions."""

    @pytest.mark.asyncio
    async def test_budget_allocation_and_warning(self, tracker, decision_fields):
        """Test an 800 decision on a 1000 budget raises one warning."""
        await tracker.initialize_session("s1", 1000, "en")
        decision = await tracker.track_decision("s1", decision_fields(cost=800))

        view = await tracker.get_cost_simulation("s1")
        simulation = view.simulation
        assert simulation.budget.allocated == 800
        assert simulation.budget.remaining == 200
        assert len(simulation.unresolved_alerts(AlertType.WARNING)) == 1
        assert simulation.unresolved_alerts(AlertType.CRITICAL) == []
        assert simulation.transactions[0].decision_id == decision.id
        assert view.analysis.budget_utilization == pytest.approx(0.8)
        assert view.analysis.risk_level == RiskLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_warning_not_duplicated(self, tracker, decision_fields):
        """Test an unresolved warning is not raised twice."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=760))
        await tracker.track_decision("s1", decision_fields(cost=10))
        simulation = (await tracker.get_cost_simulation("s1")).simulation
        assert len(simulation.unresolved_alerts(AlertType.WARNING)) == 1

    @pytest.mark.asyncio
    async def test_resolved_warning_can_fire_again(self, tracker, decision_fields):
        """Test resolving an alert lets a later crossing raise another."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=800))
        simulation = (await tracker.get_cost_simulation("s1")).simulation
        warning = simulation.unresolved_alerts(AlertType.WARNING)[0]

        resolved = await tracker.resolve_alert("s1", warning.id)
        assert resolved.resolved

        await tracker.track_decision("s1", decision_fields(cost=10))
        simulation = (await tracker.get_cost_simulation("s1")).simulation
        warnings = [a for a in simulation.alerts if a.type == AlertType.WARNING]
        assert len(warnings) == 2

    @pytest.mark.asyncio
    async def test_resolve_unknown_alert(self, tracker):
        """Test resolving an unknown alert raises KeyError."""
        await tracker.initialize_session("s1", 1000)
        with pytest.raises(KeyError):
            await tracker.resolve_alert("s1", "alert-nope")

    @pytest.mark.asyncio
    async def test_critical_alert(self, tracker, decision_fields):
        """Test crossing the critical threshold raises both alerts."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=950))
        view = await tracker.get_cost_simulation("s1")
        assert len(view.simulation.unresolved_alerts(AlertType.CRITICAL)) == 1
        assert len(view.simulation.unresolved_alerts(AlertType.WARNING)) == 1
        assert view.analysis.risk_level == RiskLevel.HIGH

    @pytest.mark.asyncio
    async def test_overrun_projection(self, tracker, decision_fields):
        """Test allocations beyond the budget project an overrun."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=1300))
        view = await tracker.get_cost_simulation("s1")
        assert view.simulation.budget.remaining == -300
        assert view.simulation.projections.estimated_total == 1300
        assert view.analysis.projected_overrun == 300
        assert view.analysis.efficiency == pytest.approx(2500 / 1300)
        assert view.simulation.breakdown[BudgetCategory.CONCEPT_DEVELOPMENT].remaining == pytest.approx(-1000)

    @pytest.mark.asyncio
    async def test_sequence_and_ids(self, tracker, decision_fields):
        """Test decisions get unique ids and increasing sequence numbers."""
        await tracker.initialize_session("s1", 1000)
        first = await tracker.track_decision("s1", decision_fields())
        second = await tracker.track_decision("s1", decision_fields(category="typography"))
        assert first.id != second.id
        assert (first.sequence, second.sequence) == (0, 1)
        assert first.session_id == "s1"

    @pytest.mark.asyncio
    async def test_dependencies_create_edges(self, tracker, decision_fields):
        """Test dependencies and influences become graph edges."""
        await tracker.initialize_session("s1", 1000)
        base = await tracker.track_decision("s1", decision_fields(category="brand-direction"))
        child = await tracker.track_decision(
            "s1", decision_fields(dependencies=[base.id], influences=[base.id])
        )
        continuity = await tracker.get_continuity("s1")
        edges = {(e.source, e.target, e.type) for e in continuity.edges}
        assert (child.id, base.id, "depends_on") in edges
        assert (child.id, base.id, "influences") in edges

    @pytest.mark.asyncio
    async def test_forward_reference_rejected(self, tracker, decision_fields):
        """Test referencing an unknown decision is rejected without side effects."""
        await tracker.initialize_session("s1", 1000)
        with pytest.raises(DecisionGraphError):
            await tracker.track_decision("s1", decision_fields(dependencies=["decision-future"]))
        with pytest.raises(DecisionGraphError):
            await tracker.track_decision("s1", decision_fields(influences=["decision-future"]))

        record = await tracker.get_session("s1")
        assert record.decisions == []
        assert record.cost_simulation.transactions == []

    @pytest.mark.asyncio
    async def test_duplicate_reference_rejected(self, tracker, decision_fields):
        """Test a repeated reference fails field validation."""
        await tracker.initialize_session("s1", 1000)
        base = await tracker.track_decision("s1", decision_fields())
        with pytest.raises(PydanticValidationError):
            await tracker.track_decision("s1", decision_fields(dependencies=[base.id, base.id]))

    @pytest.mark.asyncio
    async def test_invalid_fields_rejected(self, tracker, decision_fields):
        """Test malformed decision fields are rejected."""
        await tracker.initialize_session("s1", 1000)
        with pytest.raises(PydanticValidationError):
            await tracker.track_decision("s1", decision_fields(category="lighting"))
        with pytest.raises(PydanticValidationError):
            await tracker.track_decision("s1", decision_fields(cost=-5))
        with pytest.raises(PydanticValidationError):
            await tracker.track_decision("s1", decision_fields(impact={"brand_alignment": 1.5}))

    @pytest.mark.asyncio
    async def test_phase_milestone(self, tracker, decision_fields):
        """Test a decision in a new phase records a milestone."""
        await tracker.initialize_session("s1", 1000)
        decision = await tracker.track_decision("s1", decision_fields(category="color-palette"))
        record = await tracker.get_session("s1")
        continuity = record.continuity
        assert continuity.current_phase == CreativePhase.STYLE_DEFINITION
        assert continuity.completed_phases == [CreativePhase.STRATEGY_ANALYSIS]
        assert continuity.milestones[0].decision_id == decision.id
        assert "color-palette" in continuity.key_topics
        assert len(record.cost_simulation.unresolved_alerts(AlertType.MILESTONE)) == 1

        # Same phase: no new milestone
        await tracker.track_decision("s1", decision_fields(category="typography"))
        assert len((await tracker.get_continuity("s1")).milestones) == 1

    @pytest.mark.asyncio
    async def test_concurrent_tracking(self, tracker, decision_fields):
        """Test concurrent writers to one session never lose a decision."""
        await tracker.initialize_session("s1", 100000)
        await asyncio.gather(*(
            tracker.track_decision("s1", decision_fields(cost=10)) for _ in range(20)
        ))
        record = await tracker.get_session("s1")
        assert len(record.decisions) == 20
        assert sorted(d.sequence for d in record.decisions) == list(range(20))
        assert record.cost_simulation.budget.allocated == pytest.approx(200)


class TestDecisionLifecycle:
    """Tests for status transitions and revisions."""

    @pytest.mark.asyncio
    async def test_approve_and_implement(self, tracker, decision_fields):
        """Test proposed -> approved -> implemented."""
        await tracker.initialize_session("s1", 1000)
        decision = await tracker.track_decision("s1", decision_fields())
        approved = await tracker.update_decision_status("s1", decision.id, "approved", "client")
        assert approved.status == DecisionStatus.APPROVED
        assert approved.approved_by == "client"

        implemented = await tracker.update_decision_status("s1", decision.id, DecisionStatus.IMPLEMENTED)
        assert implemented.implemented_at is not None

    @pytest.mark.asyncio
    async def test_illegal_transition(self, tracker, decision_fields):
        """Test an illegal transition is rejected."""
        await tracker.initialize_session("s1", 1000)
        decision = await tracker.track_decision("s1", decision_fields())
        with pytest.raises(DecisionGraphError):
            await tracker.update_decision_status("s1", decision.id, "implemented")

    @pytest.mark.asyncio
    async def test_unknown_decision(self, tracker):
        """Test updating an unknown decision raises."""
        await tracker.initialize_session("s1", 1000)
        with pytest.raises(DecisionGraphError):
            await tracker.update_decision_status("s1", "decision-nope", "approved")

    @pytest.mark.asyncio
    async def test_revise_keeps_history(self, tracker, decision_fields):
        """Test revisions append history without changing allocation."""
        await tracker.initialize_session("s1", 1000)
        decision = await tracker.track_decision("s1", decision_fields(decision="Warm neutrals", cost=100))
        await tracker.revise_decision("s1", decision.id, "Cool greys", "Client feedback", 50)
        revised = await tracker.revise_decision("s1", decision.id, "Soft greys", "Refinement")

        assert revised.decision == "Warm neutrals"
        assert revised.status == DecisionStatus.REVISED
        assert [r.previous_value for r in revised.revision_history] == ["Warm neutrals", "Cool greys"]
        assert revised.revision_history[-1].new_value == "Soft greys"

        simulation = (await tracker.get_cost_simulation("s1")).simulation
        assert simulation.budget.allocated == 100

    @pytest.mark.asyncio
    async def test_rejected_cannot_be_revised(self, tracker, decision_fields):
        """Test terminal decisions cannot be revised."""
        await tracker.initialize_session("s1", 1000)
        decision = await tracker.track_decision("s1", decision_fields())
        await tracker.update_decision_status("s1", decision.id, "rejected")
        with pytest.raises(DecisionGraphError):
            await tracker.revise_decision("s1", decision.id, "Other", "Because")


class TestRecordUsage:
    """Tests for non-decision charges."""

    @pytest.mark.asyncio
    async def test_usage_counts_toward_spent_only(self, tracker, decision_fields):
        """Test generation usage is spent but not allocated."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=100))
        transaction = await tracker.record_usage("s1", 2.5, "Creative text generation")

        simulation = (await tracker.get_cost_simulation("s1")).simulation
        assert transaction.source == "generation"
        assert simulation.budget.allocated == 100
        assert simulation.budget.spent == pytest.approx(102.5)
        assert simulation.breakdown[BudgetCategory.CONSULTATION].spent == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_negative_usage_rejected(self, tracker):
        """Test negative usage is rejected."""
        await tracker.initialize_session("s1", 1000)
        with pytest.raises(ValidationError):
            await tracker.record_usage("s1", -1, "bad")


class TestReports:
    """Tests for read-side reports."""

    @pytest.mark.asyncio
    async def test_cost_simulation_is_idempotent(self, tracker, decision_fields):
        """Test two reads without a write are identical."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=300))
        first = await tracker.get_cost_simulation("s1")
        second = await tracker.get_cost_simulation("s1")
        assert first.model_dump() == second.model_dump()

    @pytest.mark.asyncio
    async def test_optimizations(self, tracker):
        """Test optimization opportunities derive from projections."""
        await tracker.initialize_session("s1", 1000)
        view = await tracker.get_cost_simulation("s1")
        savings = [o.potential_saving for o in view.optimizations]
        assert savings == [pytest.approx(45), pytest.approx(60), 0.0]

    @pytest.mark.asyncio
    async def test_cost_recommendations(self, tracker, decision_fields):
        """Test high utilization recommends optimization."""
        await tracker.initialize_session("s1", 1000)
        await tracker.track_decision("s1", decision_fields(cost=850))
        view = await tracker.get_cost_simulation("s1")
        assert any("budget optimization" in r for r in view.recommendations)

    @pytest.mark.asyncio
    async def test_low_roi_recommendation(self, memory_store):
        """Test a low ROI multiplier recommends scope review."""
        tracker = DecisionTracker(memory_store, BudgetConfig(roi_multiplier=1.5))
        await tracker.initialize_session("s1", 1000)
        view = await tracker.get_cost_simulation("s1")
        assert "Evaluate scope adjustments to improve return on investment" in view.recommendations

    @pytest.mark.asyncio
    async def test_session_decisions_summary(self, tracker, decision_fields):
        """Test the decision summary and recommendations."""
        await tracker.initialize_session("s1", 1000)
        for _ in range(4):
            await tracker.track_decision("s1", decision_fields(cost=50, impact={"quality_impact": 0.8}))
        decision = (await tracker.get_session("s1")).decisions[0]
        await tracker.update_decision_status("s1", decision.id, "approved")

        report = await tracker.get_session_decisions("s1")
        assert report.summary.total_decisions == 4
        assert report.summary.approved_decisions == 1
        assert report.summary.total_cost_impact == 200
        assert report.summary.avg_quality_impact == pytest.approx(0.8)
        assert report.recommendations == []

        await tracker.track_decision("s1", decision_fields(cost=50, impact={"budget_impact": 0.5}))
        report = await tracker.get_session_decisions("s1")
        assert "Consider approving pending decisions to maintain project momentum" in report.recommendations
        assert "Review high-impact budget decisions for optimization opportunities" in report.recommendations

    @pytest.mark.asyncio
    async def test_empty_session_decisions(self, tracker):
        """Test an empty session reports zero figures."""
        await tracker.initialize_session("s1", 1000)
        report = await tracker.get_session_decisions("s1")
        assert report.summary.total_decisions == 0
        assert report.summary.avg_quality_impact == 0


class TestExportImport:
    """Tests for session export and import."""

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, tracker, memory_store, decision_fields):
        """Test an exported session can be imported elsewhere."""
        await tracker.initialize_session("s1", 1000)
        base = await tracker.track_decision("s1", decision_fields(category="brand-direction"))
        await tracker.track_decision("s1", decision_fields(dependencies=[base.id]))
        memory_store.add_error_report(ErrorReport(
            session_id="s1",
            error_name="NetworkError",
            message="timeout",
            classification=ErrorClassification(
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.MEDIUM,
                recoverable=True,
                user_action_required=False,
            ),
        ))

        snapshot = await tracker.export_session("s1")
        assert len(snapshot.error_reports) == 1

        other = DecisionTracker(type(memory_store)())
        record = await other.import_session(snapshot.model_dump(mode="json"))
        assert [d.id for d in record.decisions] == [d.id for d in snapshot.decisions]
        assert record.next_sequence == 2
        assert other.store.get_error_reports("s1")[0].message == "timeout"

        # Tracking continues after the imported sequence
        decision = await other.track_decision("s1", decision_fields())
        assert decision.sequence == 2

    @pytest.mark.asyncio
    async def test_import_rejects_broken_order(self, tracker, decision_fields):
        """Test a snapshot whose dependencies point forward is rejected."""
        await tracker.initialize_session("s1", 1000)
        base = await tracker.track_decision("s1", decision_fields())
        await tracker.track_decision("s1", decision_fields(dependencies=[base.id]))

        data = (await tracker.export_session("s1")).model_dump(mode="json")
        data["decisions"][0]["sequence"] = 5
        with pytest.raises(DecisionGraphError):
            await tracker.import_session(data)
