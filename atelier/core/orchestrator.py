"""
Creative session orchestrator.

Wires the handoff synthesizer, decision tracker, update scheduler, recovery
orchestrator and language-generation service into one facade. Observers
subscribe to slice updates; the orchestrator publishes a slice update after
every state change it makes.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from atelier.core.handoff import ContextSynthesizer
from atelier.core.recovery import RecoveryOrchestrator
from atelier.core.scheduler import UpdateScheduler
from atelier.core.store import SessionStore, create_store
from atelier.core.tracker import DecisionTracker
from atelier.exceptions import GenerationError
from atelier.llm.client import GenerationService, LLMClient
from atelier.llm.prompts.creative import CREATIVE_DIRECTOR_SYSTEM_PROMPT, build_creative_prompt
from atelier.llm.structured import CreativeReply, GenerationRequest, GenerationResponse
from atelier.models.config import AtelierConfig
from atelier.models.costs import CostAlert, CostSimulationView
from atelier.models.decisions import CreativeDecision, DecisionFields, DecisionReport, DecisionStatus
from atelier.models.errors import HandleErrorResult
from atelier.models.handoff import AnalysisDocument
from atelier.models.session import SessionRecord, SessionSnapshot
from atelier.utils.logger import get_logger

logger = get_logger("atelier.orchestrator")

Observer = Callable[[str, dict[str, Any]], Any]

DECISIONS_SLICE = "decisions"
COST_SLICE = "cost"
HANDOFF_SLICE = "handoff-preparation"
SESSION_SLICES = (DECISIONS_SLICE, COST_SLICE, HANDOFF_SLICE)


class CreativeSessionOrchestrator:
    """
    Facade over one process's creative sessions.

    Slice updates are keyed by session id, so one observer sees
    ``("cost", {"s1": {...}})`` and can route by key.

    Example:
        >>> orchestrator = CreativeSessionOrchestrator(AtelierConfig(), generator=StaticGenerator())
        >>> orchestrator.subscribe(lambda name, changes: print(name, changes))
        >>> await orchestrator.start_session("s1", analysis_document)
        >>> await orchestrator.track_decision("s1", {"category": "color-palette",
        ...     "decision": "Warm neutrals", "implementation": {"cost": 120}})
    """

    def __init__(
        self,
        config: AtelierConfig | None = None,
        store: SessionStore | None = None,
        generator: GenerationService | None = None,
        scheduler: UpdateScheduler | None = None,
        recovery: RecoveryOrchestrator | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Atelier configuration
            store: Session store; built from ``config.storage`` when omitted
            generator: Language-generation service; LiteLLM when omitted
            scheduler: Update scheduler; one delivering to subscribers when omitted
            recovery: Recovery orchestrator; built from ``config.recovery`` when omitted
        """
        self.config = config or AtelierConfig()
        self.store = store or create_store(
            self.config.storage.backend,
            self.config.storage.directory,
            max_error_reports=self.config.recovery.max_reports,
        )
        self.synthesizer = ContextSynthesizer()
        self.tracker = DecisionTracker(self.store, self.config.budget)
        self.recovery = recovery or RecoveryOrchestrator(self.config.recovery)
        self.scheduler = scheduler or UpdateScheduler(self._dispatch, config=self.config.scheduler)
        self._generator = generator
        self._observers: list[Observer] = []

    @property
    def generator(self) -> GenerationService:
        if self._generator is None:
            self._generator = LLMClient(self.config.llm)
        return self._generator

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a slice observer.

        Returns:
            A callable that unsubscribes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _dispatch(self, name: str, changes: dict[str, Any]) -> None:
        for observer in list(self._observers):
            try:
                observer(name, changes)
            except Exception:
                logger.exception("Observer failed for slice %s", name)

    async def _publish(self, session_id: str) -> None:
        record = await self.tracker.get_session(session_id)
        simulation = record.cost_simulation
        budget = simulation.budget
        self.scheduler.update_batched(DECISIONS_SLICE, {
            session_id: {
                "count": len(record.decisions),
                "latest": record.decisions[-1].id if record.decisions else None,
                "phase": record.continuity.current_phase.value,
            },
        })
        self.scheduler.update_memoized(COST_SLICE, {
            session_id: {
                "total": budget.total,
                "allocated": budget.allocated,
                "spent": budget.spent,
                "remaining": budget.remaining,
                "utilization": round(simulation.utilization_percent, 2),
                "unresolved_alerts": len(simulation.unresolved_alerts()),
            },
        })

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def start_session(
        self,
        session_id: str,
        document: AnalysisDocument | Mapping[str, Any],
    ) -> SessionRecord:
        """
        Start a session from an upstream analysis document.

        Args:
            session_id: Session identifier
            document: The handoff analysis document

        Returns:
            The initialized session record

        Raises:
            HandoffValidationError: If the document fails validation
        """
        context = self.synthesizer.synthesize(document)
        await self._clear_session_state(session_id)
        record = await self.tracker.initialize_session(
            session_id,
            context.budget,
            context.locale,
            handoff_context=context,
        )
        self.scheduler.update_memoized(HANDOFF_SLICE, {
            session_id: {
                "ready": True,
                "primary_style": context.visual_direction.primary_style.value,
                "color_mood": context.visual_direction.color_mood.value,
                "budget": context.budget,
            },
        })
        await self._publish(session_id)
        return record

    async def initialize_session(
        self,
        session_id: str,
        budget: float | None = None,
        locale: str = "en",
    ) -> SessionRecord:
        """Create a session without a handoff; ``budget`` defaults to the configured one."""
        await self._clear_session_state(session_id)
        record = await self.tracker.initialize_session(
            session_id,
            budget if budget is not None else self.config.budget.default_budget,
            locale,
        )
        await self._publish(session_id)
        return record

    async def reset_session(self, session_id: str) -> bool:
        """
        Delete a session, cancelling its recoveries and pending slice updates.

        Returns:
            False if the session did not exist
        """
        await self._clear_session_state(session_id)
        return await self.tracker.reset_session(session_id)

    async def _clear_session_state(self, session_id: str) -> None:
        await self.recovery.cancel_session(session_id)
        self.recovery.forget_session(session_id)
        for name in SESSION_SLICES:
            self.scheduler.cancel_pending(name, fields=[session_id])

    async def get_session(self, session_id: str) -> SessionRecord:
        return await self.tracker.get_session(session_id)

    # ------------------------------------------------------------------
    # Decisions and costs
    # ------------------------------------------------------------------

    async def track_decision(
        self,
        session_id: str,
        fields: DecisionFields | Mapping[str, Any],
    ) -> CreativeDecision:
        decision = await self.tracker.track_decision(session_id, fields)
        await self._publish(session_id)
        return decision

    async def update_decision_status(
        self,
        session_id: str,
        decision_id: str,
        status: DecisionStatus | str,
        approved_by: str | None = None,
    ) -> CreativeDecision:
        decision = await self.tracker.update_decision_status(
            session_id, decision_id, DecisionStatus(status), approved_by
        )
        await self._publish(session_id)
        return decision

    async def revise_decision(
        self,
        session_id: str,
        decision_id: str,
        new_value: str,
        reason: str,
        cost_impact: float = 0.0,
    ) -> CreativeDecision:
        decision = await self.tracker.revise_decision(session_id, decision_id, new_value, reason, cost_impact)
        await self._publish(session_id)
        return decision

    async def resolve_alert(self, session_id: str, alert_id: str) -> CostAlert:
        alert = await self.tracker.resolve_alert(session_id, alert_id)
        await self._publish(session_id)
        return alert

    async def get_session_decisions(self, session_id: str) -> DecisionReport:
        return await self.tracker.get_session_decisions(session_id)

    async def get_cost_simulation(self, session_id: str) -> CostSimulationView:
        return await self.tracker.get_cost_simulation(session_id)

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    async def handle_error(
        self,
        error: BaseException,
        context: dict[str, Any] | None = None,
        session_id: str = "default",
    ) -> HandleErrorResult:
        """
        Handle a runtime failure and keep its report with the session.

        Reports for sessions that no longer exist are not persisted.
        """
        result = await self.recovery.handle_error(error, context, session_id)
        if self.store.exists(session_id):
            self.store.add_error_report(result.error_report)
        return result

    async def retry_recovery(self, error_id: str) -> HandleErrorResult:
        result = await self.recovery.retry_recovery(error_id)
        if self.store.exists(result.error_report.session_id):
            self.store.add_error_report(result.error_report)
        return result

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def export_session(self, session_id: str) -> SessionSnapshot:
        return await self.tracker.export_session(session_id)

    async def import_session(self, snapshot: SessionSnapshot | Mapping[str, Any]) -> SessionRecord:
        record = await self.tracker.import_session(snapshot)
        await self._publish(record.session_id)
        return record

    # ------------------------------------------------------------------
    # Language generation
    # ------------------------------------------------------------------

    async def generate_creative_text(
        self,
        session_id: str,
        intent: str,
        message: str,
    ) -> CreativeReply:
        """
        Generate creative-direction text for a session and book its cost.

        The session lock is held only while reading the context and while
        booking usage, never across the generation call.

        Args:
            session_id: Session to generate for
            intent: brainstorm, refine, critique, summarize or chat
            message: The client's message

        Returns:
            CreativeReply with the text and its booked cost

        Raises:
            SessionNotFoundError: Unknown session
            GenerationError: If generation fails and cannot be recovered
        """
        record = await self.tracker.get_session(session_id)
        summary = record.handoff_context.to_prompt_summary() if record.handoff_context else ""
        recent = [d.to_summary() for d in record.decisions[-5:]]

        request = GenerationRequest(
            prompt=build_creative_prompt(intent, message, summary, recent),
            system_prompt=CREATIVE_DIRECTOR_SYSTEM_PROMPT,
        )
        response = await self._generate(session_id, request)

        cost = response.cost(self.config.pricing)
        if cost > 0:
            await self.tracker.record_usage(session_id, cost, f"Creative text generation ({intent})")
            await self._publish(session_id)

        return CreativeReply(
            session_id=session_id,
            intent=intent if intent in ("brainstorm", "refine", "critique", "summarize") else "chat",
            text=response.text,
            cost=cost,
            usage=response.usage,
        )

    async def _generate(self, session_id: str, request: GenerationRequest) -> GenerationResponse:
        try:
            return await self.generator.generate(request)
        except Exception as e:
            result = await self.handle_error(
                e, {"api_call": True, "operation": "generate_creative_text"}, session_id
            )
            if not result.recovered:
                raise GenerationError(f"Creative text generation failed: {e}") from e

        try:
            return await self.generator.generate(request)
        except Exception as e:
            raise GenerationError(f"Creative text generation failed after recovery: {e}") from e
