"""
Decision graph and cost simulation.

Every creative decision becomes a node in the session's decision graph and a
charge in its cost simulation. All mutations of one session run under that
session's lock and are written back in one step, so a reader never observes a
decision without its transaction or totals that were only partly recomputed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from atelier.exceptions import DecisionGraphError, ValidationError
from atelier.models.config import BudgetConfig
from atelier.models.costs import (
    AlertType,
    BudgetCategory,
    BudgetState,
    CostAlert,
    CostAnalysis,
    CostCategory,
    CostOptimization,
    CostSimulation,
    CostSimulationView,
    CostTransaction,
    Projections,
    RiskLevel,
    RoiEstimate,
    Thresholds,
)
from atelier.models.decisions import (
    CreativeDecision,
    DecisionFields,
    DecisionReport,
    DecisionRevision,
    DecisionStatus,
    DecisionSummary,
    Tier,
)
from atelier.models.errors import ErrorReport
from atelier.models.handoff import HandoffContext
from atelier.models.session import (
    CreativePhase,
    GraphEdge,
    Milestone,
    SessionContinuity,
    SessionRecord,
    SessionSnapshot,
)
from atelier.core.store import SessionStore
from atelier.utils.helpers import generate_id
from atelier.utils.logger import get_logger, log_decision
from atelier.utils.validators import validate_budget, validate_locale, validate_session_id

logger = get_logger("atelier.tracker")


class DecisionTracker:
    """
    Records creative decisions and simulates the budget they consume.

    Example:
        >>> tracker = DecisionTracker(InMemorySessionStore())
        >>> await tracker.initialize_session("s1", 1000, "en")
        >>> await tracker.track_decision("s1", {"category": "color-palette",
        ...     "decision": "Warm neutrals", "implementation": {"cost": 800}})
        >>> (await tracker.get_cost_simulation("s1")).simulation.budget.remaining
        200.0
    """

    def __init__(self, store: SessionStore, config: BudgetConfig | None = None):
        """
        Initialize the tracker.

        Args:
            store: Session repository
            config: Budget split, thresholds and ROI defaults
        """
        self.store = store
        self.config = config or BudgetConfig()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def initialize_session(
        self,
        session_id: str,
        budget: float,
        locale: str = "en",
        handoff_context: HandoffContext | None = None,
    ) -> SessionRecord:
        """
        Create a fresh session, replacing any existing one with the same id.

        Args:
            session_id: Opaque session identifier
            budget: Total budget
            locale: ``en`` or ``ja``
            handoff_context: Context synthesized from the upstream handoff

        Returns:
            The new session record
        """
        session_id = validate_session_id(session_id)
        total = validate_budget(budget)
        locale = validate_locale(locale)

        record = SessionRecord(
            session_id=session_id,
            locale=locale,
            handoff_context=handoff_context,
            cost_simulation=self._new_simulation(total),
        )

        async with self.store.session(session_id):
            # drops the previous record together with its error reports
            replaced = self.store.delete(session_id)
            self.store.put(record)

        logger.info(
            "Session %s %s with budget %.2f (%s)",
            session_id, "reset" if replaced else "initialized", total, locale,
            extra={"session_id": session_id},
        )
        return record

    async def reset_session(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        async with self.store.session(session_id):
            deleted = self.store.delete(session_id)
        if deleted:
            logger.info("Session %s reset", session_id, extra={"session_id": session_id})
        return deleted

    def _new_simulation(self, total: float) -> CostSimulation:
        cfg = self.config
        breakdown = {
            BudgetCategory(name): CostCategory(
                budgeted=total * share,
                remaining=total * share,
                projected=total * share,
            )
            for name, share in cfg.category_split.items()
        }
        return CostSimulation(
            budget=BudgetState(total=total, remaining=total),
            breakdown=breakdown,
            projections=Projections(estimated_total=total, confidence_level=cfg.projection_confidence),
            thresholds=Thresholds(
                warning=cfg.warning_threshold,
                critical=cfg.critical_threshold,
                project_hold=cfg.project_hold_threshold,
            ),
            roi=RoiEstimate(
                estimated_value=total * cfg.roi_multiplier,
                projected_return=cfg.roi_multiplier,
                time_to_value=cfg.time_to_value,
                risk_adjusted_return=cfg.risk_adjusted_return,
            ),
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def track_decision(
        self,
        session_id: str,
        fields: DecisionFields | Mapping[str, Any],
    ) -> CreativeDecision:
        """
        Append a decision and charge its cost.

        Args:
            session_id: Session to record into
            fields: Caller-supplied decision fields

        Returns:
            The tracked decision with its assigned id, timestamp and sequence

        Raises:
            SessionNotFoundError: Unknown session
            DecisionGraphError: A dependency or influence names no earlier decision
        """
        if not isinstance(fields, DecisionFields):
            fields = DecisionFields.model_validate(fields)

        async with self.store.session(session_id):
            record = self.store.get(session_id)
            known = {d.id for d in record.decisions}

            for ref_list, label in ((fields.dependencies, "dependency"), (fields.influences, "influence")):
                unknown = [ref for ref in ref_list if ref not in known]
                if unknown:
                    raise DecisionGraphError(
                        f"Unknown {label} for session {session_id}: {', '.join(unknown)}"
                    )

            decision = CreativeDecision(
                **fields.model_dump(),
                id=generate_id("decision"),
                session_id=session_id,
                sequence=record.next_sequence,
                timestamp=datetime.now(),
            )
            record.next_sequence += 1
            record.decisions.append(decision)

            for dep in decision.dependencies:
                record.continuity.edges.append(GraphEdge(source=decision.id, target=dep, type="depends_on"))
            for inf in decision.influences:
                record.continuity.edges.append(GraphEdge(source=decision.id, target=inf, type="influences"))

            simulation = record.cost_simulation
            self._charge(
                simulation,
                CostTransaction(
                    category=BudgetCategory(decision.category.budget_category),
                    amount=decision.implementation.cost,
                    description=decision.decision,
                    decision_id=decision.id,
                    timestamp=decision.timestamp,
                ),
                allocate=True,
            )
            self._check_thresholds(simulation)
            self._advance_journey(record.continuity, simulation, decision)

            record.updated_at = datetime.now()
            self.store.put(record)

        log_decision(
            logger,
            session_id,
            decision.category.value,
            decision.implementation.cost,
            simulation.budget.allocated / simulation.budget.total,
        )
        return decision

    async def record_usage(
        self,
        session_id: str,
        amount: float,
        description: str,
        category: BudgetCategory = BudgetCategory.CONSULTATION,
    ) -> CostTransaction:
        """
        Book a non-decision charge such as language-generation usage.

        The charge counts toward ``spent`` but not ``allocated``, which stays
        the sum of decision costs.
        """
        if amount < 0:
            raise ValidationError(f"Usage amount must be non-negative, got {amount}", "amount")

        async with self.store.session(session_id):
            record = self.store.get(session_id)
            transaction = CostTransaction(
                category=category,
                amount=amount,
                description=description,
                source="generation",
            )
            self._charge(record.cost_simulation, transaction, allocate=False)
            record.updated_at = datetime.now()
            self.store.put(record)

        logger.debug(
            "Usage booked for session %s: %.6f (%s)", session_id, amount, description,
            extra={"session_id": session_id},
        )
        return transaction

    @staticmethod
    def _charge(simulation: CostSimulation, transaction: CostTransaction, allocate: bool) -> None:
        """Append a transaction and recompute every dependent total."""
        simulation.transactions.append(transaction)

        bucket = simulation.breakdown[transaction.category]
        bucket.spent += transaction.amount
        bucket.remaining = bucket.budgeted - bucket.spent
        bucket.projected = max(bucket.budgeted, bucket.spent)
        bucket.items.append(transaction.id)

        budget = simulation.budget
        if allocate:
            budget.allocated += transaction.amount
        budget.spent = sum(c.spent for c in simulation.breakdown.values())
        budget.remaining = budget.total - budget.allocated
        simulation.projections.estimated_total = max(budget.total, budget.allocated)

    @staticmethod
    def _check_thresholds(simulation: CostSimulation) -> None:
        """Raise warning/critical alerts unless an unresolved one of the type exists."""
        utilization = simulation.utilization_percent
        rules = (
            (
                AlertType.WARNING,
                simulation.thresholds.warning,
                "approaching warning threshold",
                "Review remaining decisions and consider optimization opportunities",
            ),
            (
                AlertType.CRITICAL,
                simulation.thresholds.critical,
                "critical threshold reached",
                "Pause new commitments and re-prioritize remaining deliverables",
            ),
        )
        for alert_type, threshold, label, action in rules:
            if utilization >= threshold and not simulation.unresolved_alerts(alert_type):
                simulation.alerts.append(CostAlert(
                    type=alert_type,
                    message=f"Budget utilization at {round(utilization)}% - {label}",
                    action=action,
                    threshold=threshold,
                    current_value=utilization,
                ))
                logger.warning("Budget %s alert: utilization %.0f%%", alert_type.value, utilization)

    @staticmethod
    def _advance_journey(continuity: SessionContinuity, simulation: CostSimulation, decision: CreativeDecision) -> None:
        category = decision.category.value
        if category not in continuity.key_topics:
            continuity.key_topics.append(category)

        phase = CreativePhase(decision.category.phase)
        if phase == continuity.current_phase:
            return

        if continuity.current_phase not in continuity.completed_phases:
            continuity.completed_phases.append(continuity.current_phase)
        continuity.current_phase = phase
        continuity.milestones.append(Milestone(phase=phase, decision_id=decision.id))
        simulation.alerts.append(CostAlert(
            type=AlertType.MILESTONE,
            message=f"Entered {phase.value} phase",
            action=phase.description,
        ))

    async def update_decision_status(
        self,
        session_id: str,
        decision_id: str,
        status: DecisionStatus | str,
        approved_by: str | None = None,
    ) -> CreativeDecision:
        """
        Move a decision through its lifecycle.

        Raises:
            DecisionGraphError: Unknown decision or illegal transition
        """
        status = DecisionStatus(status)

        async with self.store.session(session_id):
            record = self.store.get(session_id)
            decision = self._find(record, decision_id)

            if status not in decision.status.allowed_transitions:
                raise DecisionGraphError(
                    f"Cannot move decision {decision_id} from {decision.status.value} to {status.value}"
                )

            decision.status = status
            if status == DecisionStatus.APPROVED:
                decision.approved_by = approved_by or "user"
            elif status == DecisionStatus.IMPLEMENTED:
                decision.implemented_at = datetime.now()

            record.updated_at = datetime.now()
            self.store.put(record)

        logger.info("Decision %s is now %s", decision_id, status.value, extra={"session_id": session_id})
        return decision

    async def revise_decision(
        self,
        session_id: str,
        decision_id: str,
        new_value: str,
        reason: str,
        cost_impact: float = 0.0,
    ) -> CreativeDecision:
        """
        Record a revision without rewriting history.

        The original decision text stays as tracked; the revision entry carries
        the new value. ``cost_impact`` is informational and does not change the
        budget allocation.
        """
        async with self.store.session(session_id):
            record = self.store.get(session_id)
            decision = self._find(record, decision_id)

            if DecisionStatus.REVISED not in decision.status.allowed_transitions and decision.status != DecisionStatus.REVISED:
                raise DecisionGraphError(
                    f"Decision {decision_id} is {decision.status.value} and cannot be revised"
                )

            previous = decision.revision_history[-1].new_value if decision.revision_history else decision.decision
            decision.revision_history.append(DecisionRevision(
                previous_value=previous,
                new_value=new_value,
                reason=reason,
                cost_impact=cost_impact,
            ))
            decision.status = DecisionStatus.REVISED

            record.updated_at = datetime.now()
            self.store.put(record)

        return decision

    @staticmethod
    def _find(record: SessionRecord, decision_id: str) -> CreativeDecision:
        decision = record.find_decision(decision_id)
        if decision is None:
            raise DecisionGraphError(f"Unknown decision {decision_id} in session {record.session_id}")
        return decision

    async def resolve_alert(self, session_id: str, alert_id: str) -> CostAlert:
        """Mark an alert resolved so a later threshold crossing can raise a new one."""
        async with self.store.session(session_id):
            record = self.store.get(session_id)
            for alert in record.cost_simulation.alerts:
                if alert.id == alert_id:
                    alert.resolved = True
                    record.updated_at = datetime.now()
                    self.store.put(record)
                    return alert
        raise KeyError(f"Unknown alert {alert_id} in session {session_id}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _snapshot(self, session_id: str) -> SessionRecord:
        async with self.store.session(session_id):
            return self.store.get(session_id)

    async def get_session(self, session_id: str) -> SessionRecord:
        return await self._snapshot(session_id)

    async def get_continuity(self, session_id: str) -> SessionContinuity:
        return (await self._snapshot(session_id)).continuity

    async def get_session_decisions(self, session_id: str) -> DecisionReport:
        """
        Get every decision with summary figures and recommendations.

        Raises:
            SessionNotFoundError: Unknown session
        """
        record = await self._snapshot(session_id)
        decisions = record.decisions
        count = len(decisions)

        summary = DecisionSummary(
            total_decisions=count,
            approved_decisions=sum(1 for d in decisions if d.status == DecisionStatus.APPROVED),
            total_cost_impact=sum(d.implementation.cost for d in decisions),
            avg_quality_impact=sum(d.impact.quality_impact for d in decisions) / max(count, 1),
            critical_dependencies=sum(1 for d in decisions if len(d.dependencies) > 2),
        )

        return DecisionReport(
            decisions=decisions,
            summary=summary,
            recommendations=self._decision_recommendations(decisions),
        )

    @staticmethod
    def _decision_recommendations(decisions: list[CreativeDecision]) -> list[str]:
        recommendations = []
        if sum(1 for d in decisions if d.status == DecisionStatus.PROPOSED) > 3:
            recommendations.append("Consider approving pending decisions to maintain project momentum")
        if any(d.impact.budget_impact > 0.3 for d in decisions):
            recommendations.append("Review high-impact budget decisions for optimization opportunities")
        if sum(1 for d in decisions if d.implementation.risk_level == Tier.HIGH) > 1:
            recommendations.append("Mitigate risks in high-complexity decisions through phased approach")
        return recommendations

    async def get_cost_simulation(self, session_id: str) -> CostSimulationView:
        """
        Get the cost simulation with derived analysis.

        Pure read: two calls with no write in between return identical figures.

        Raises:
            SessionNotFoundError: Unknown session
        """
        simulation = (await self._snapshot(session_id)).cost_simulation
        return CostSimulationView(
            simulation=simulation,
            analysis=self.analyze(simulation),
            optimizations=self._optimizations(simulation),
            recommendations=self._cost_recommendations(simulation),
        )

    @staticmethod
    def analyze(simulation: CostSimulation) -> CostAnalysis:
        """Compute utilization, overrun, efficiency and risk for a simulation."""
        total = simulation.budget.total
        estimated_total = simulation.projections.estimated_total
        utilization = simulation.budget.allocated / total
        overrun_ratio = estimated_total / total - 1

        if utilization > 0.9 or overrun_ratio > 0.2:
            risk = RiskLevel.HIGH
        elif utilization > 0.75 or overrun_ratio > 0.1:
            risk = RiskLevel.MEDIUM
        else:
            risk = RiskLevel.LOW

        return CostAnalysis(
            budget_utilization=utilization,
            projected_overrun=max(0.0, estimated_total - total),
            efficiency=simulation.roi.estimated_value / estimated_total if estimated_total else 0.0,
            risk_level=risk,
        )

    @staticmethod
    def _optimizations(simulation: CostSimulation) -> list[CostOptimization]:
        breakdown = simulation.breakdown
        return [
            CostOptimization(
                opportunity="Combine similar asset generation tasks for efficiency",
                potential_saving=breakdown[BudgetCategory.ASSET_GENERATION].projected * 0.15,
                impact="Reduces timeline by 1-2 weeks while maintaining quality",
            ),
            CostOptimization(
                opportunity="Use template-based approach for secondary applications",
                potential_saving=breakdown[BudgetCategory.CONCEPT_DEVELOPMENT].projected * 0.2,
                impact="Faster implementation with consistent brand application",
            ),
            CostOptimization(
                opportunity="Phase implementation to spread costs",
                potential_saving=0.0,
                impact="Improves cash flow and allows for iterative refinement",
            ),
        ]

    @staticmethod
    def _cost_recommendations(simulation: CostSimulation) -> list[str]:
        recommendations = []
        if simulation.budget.allocated / simulation.budget.total > 0.8:
            recommendations.append(
                "Consider budget optimization to ensure project completion within allocated funds"
            )
        if simulation.roi.projected_return < 2.0:
            recommendations.append("Evaluate scope adjustments to improve return on investment")
        return recommendations

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    async def export_session(
        self,
        session_id: str,
        error_reports: list[ErrorReport] | None = None,
    ) -> SessionSnapshot:
        """
        Export a complete, re-importable snapshot.

        Args:
            session_id: Session to export
            error_reports: Reports to include; defaults to those in the store
        """
        record = await self._snapshot(session_id)
        if error_reports is None:
            error_reports = self.store.get_error_reports(session_id)
        return SessionSnapshot(
            session_id=record.session_id,
            locale=record.locale,
            handoff_context=record.handoff_context,
            decisions=record.decisions,
            cost_simulation=record.cost_simulation,
            continuity=record.continuity,
            error_reports=error_reports,
        )

    async def import_session(self, snapshot: SessionSnapshot | Mapping[str, Any]) -> SessionRecord:
        """
        Recreate a session from an exported snapshot, replacing any existing one.

        Raises:
            DecisionGraphError: The snapshot's decisions break the graph ordering
        """
        if not isinstance(snapshot, SessionSnapshot):
            snapshot = SessionSnapshot.model_validate(snapshot)

        decisions = sorted(snapshot.decisions, key=lambda d: d.sequence)
        seen: set[str] = set()
        for decision in decisions:
            missing = [ref for ref in decision.dependencies if ref not in seen]
            if missing:
                raise DecisionGraphError(
                    f"Decision {decision.id} depends on {', '.join(missing)} which is not earlier in the snapshot"
                )
            seen.add(decision.id)

        record = SessionRecord(
            session_id=snapshot.session_id,
            locale=snapshot.locale,
            handoff_context=snapshot.handoff_context,
            decisions=decisions,
            cost_simulation=snapshot.cost_simulation,
            continuity=snapshot.continuity,
            next_sequence=(decisions[-1].sequence + 1) if decisions else 0,
        )

        async with self.store.session(record.session_id):
            self.store.delete(record.session_id)
            self.store.put(record)
            for report in snapshot.error_reports:
                self.store.add_error_report(report)

        logger.info(
            "Session %s imported with %d decisions", record.session_id, len(decisions),
            extra={"session_id": record.session_id},
        )
        return record
