"""
Error classification and recovery.

Runtime failures (network, API, generation, storage, ...) are classified by
deterministic keyword rules, matched to a recovery strategy, retried through
bound automated actions and, when recovery does not succeed, turned into
user guidance. Every handled failure produces an ``ErrorReport``.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from atelier.models.config import RecoveryConfig
from atelier.models.errors import (
    CategoryTrend,
    ErrorAnalytics,
    ErrorCategory,
    ErrorClassification,
    ErrorPattern,
    ErrorReport,
    ErrorSeverity,
    HandleErrorResult,
    PatternSummary,
    RecoveryAttempt,
    RecoveryOutcome,
    RecoveryStep,
    RecoveryStrategy,
    StepResult,
    UserAction,
    UserGuidance,
)
from atelier.utils.logger import get_logger, log_recovery

logger = get_logger("atelier.recovery")

RecoveryAction = Callable[[dict[str, Any]], Awaitable[bool]]


# ----------------------------------------------------------------------
# Classification
# ----------------------------------------------------------------------

AFFECTED_SYSTEMS: dict[ErrorCategory, tuple[str, ...]] = {
    ErrorCategory.NETWORK: ("api", "asset_loading"),
    ErrorCategory.VALIDATION: ("user_input", "creative_direction"),
    ErrorCategory.API: ("external_apis", "asset_generation"),
    ErrorCategory.GENERATION: ("asset_generation", "ai_services"),
    ErrorCategory.STORAGE: ("cloud_storage", "file_management"),
    ErrorCategory.PERMISSION: ("user_permissions", "system_access"),
    ErrorCategory.QUOTA: ("cost_management", "resource_limits"),
    ErrorCategory.SYSTEM: ("system",),
}


def _flag(context: dict[str, Any], snake: str, camel: str) -> bool:
    return bool(context.get(snake) or context.get(camel))


def _contains(text: str, *keywords: str) -> bool:
    return any(k in text for k in keywords)


class ErrorClassifier:
    """
    Deterministic keyword classifier.

    Rules are evaluated in order and the first match wins, so a timeout on an
    API call is a network error, not an API error.

    Example:
        >>> ErrorClassifier().classify(TimeoutError("request timeout"), {}).category
        <ErrorCategory.NETWORK: 'network'>
    """

    def classify(self, error: BaseException, context: dict[str, Any] | None = None) -> ErrorClassification:
        context = context or {}
        message = str(error).lower()
        name = type(error).__name__.lower()

        if _contains(message, "network", "fetch", "timeout") or _contains(name, "networkerror", "timeout"):
            return self._build(ErrorCategory.NETWORK, self.assess_severity(error, context), True, False)

        if _contains(message, "validation", "invalid") or "validationerror" in name:
            return self._build(ErrorCategory.VALIDATION, ErrorSeverity.MEDIUM, False, True)

        if _contains(message, "api", "unauthorized", "forbidden") or _flag(context, "api_call", "apiCall"):
            return self._build(
                ErrorCategory.API,
                self.assess_severity(error, context),
                True,
                "unauthorized" in message,
            )

        if _contains(message, "generation", "imagen") or _flag(context, "asset_generation", "assetGeneration"):
            return self._build(ErrorCategory.GENERATION, self.assess_severity(error, context), True, False)

        if _contains(message, "storage", "upload", "download"):
            return self._build(ErrorCategory.STORAGE, self.assess_severity(error, context), True, False)

        if _contains(message, "permission", "access") or "permission" in name:
            return self._build(ErrorCategory.PERMISSION, ErrorSeverity.HIGH, False, True)

        if _contains(message, "quota", "limit", "budget") or "quota" in name:
            return self._build(ErrorCategory.QUOTA, ErrorSeverity.HIGH, False, True)

        return self._build(ErrorCategory.SYSTEM, self.assess_severity(error, context), False, True)

    @staticmethod
    def assess_severity(error: BaseException, context: dict[str, Any]) -> ErrorSeverity:
        message = str(error).lower()
        if _contains(message, "critical", "fatal", "corrupt") or _flag(context, "critical_operation", "criticalOperation"):
            return ErrorSeverity.CRITICAL
        if _contains(message, "failed", "error") or _flag(context, "high_priority", "highPriority"):
            return ErrorSeverity.HIGH
        if _contains(message, "warning", "minor") or _flag(context, "background_task", "backgroundTask"):
            return ErrorSeverity.LOW
        return ErrorSeverity.MEDIUM

    @staticmethod
    def _build(
        category: ErrorCategory,
        severity: ErrorSeverity,
        recoverable: bool,
        user_action_required: bool,
    ) -> ErrorClassification:
        return ErrorClassification(
            category=category,
            severity=severity,
            recoverable=recoverable,
            user_action_required=user_action_required,
            affected_systems=AFFECTED_SYSTEMS[category],
        )


# ----------------------------------------------------------------------
# Strategies and guidance tables
# ----------------------------------------------------------------------

def default_strategies() -> list[RecoveryStrategy]:
    """Built-in strategies, in registration order."""
    return [
        RecoveryStrategy(
            id="network_recovery",
            name="Network Connection Recovery",
            description="Attempts to recover from network connectivity issues",
            applicable_errors=["network"],
            success_probability=0.8,
            estimated_time=5.0,
            steps=[
                RecoveryStep(id="retry_connection", description="Retry the failed network request",
                             action="retry_request", timeout=15.0),
                RecoveryStep(id="fallback_endpoint", description="Use alternative service endpoint",
                             action="fallback_service", timeout=5.0),
            ],
        ),
        RecoveryStrategy(
            id="api_recovery",
            name="API Service Recovery",
            description="Recovers from API service failures",
            applicable_errors=["api"],
            success_probability=0.7,
            estimated_time=8.0,
            steps=[
                RecoveryStep(id="refresh_auth", description="Refresh authentication tokens",
                             action="refresh_auth", timeout=3.0),
                RecoveryStep(id="retry_api", description="Retry API call with fresh authentication",
                             action="retry_request", timeout=15.0),
            ],
        ),
        RecoveryStrategy(
            id="generation_recovery",
            name="Asset Generation Recovery",
            description="Recovers from asset generation failures",
            applicable_errors=["generation"],
            success_probability=0.75,
            estimated_time=10.0,
            steps=[
                RecoveryStep(id="reduce_complexity", description="Reduce generation complexity",
                             action="reduce_quality", timeout=2.0),
                RecoveryStep(id="retry_generation", description="Retry with optimized parameters",
                             action="retry_request", timeout=20.0),
            ],
        ),
        RecoveryStrategy(
            id="storage_recovery",
            name="Storage Recovery",
            description="Recovers from upload, download and storage failures",
            applicable_errors=["storage"],
            success_probability=0.6,
            estimated_time=6.0,
            steps=[
                RecoveryStep(id="clear_cache", description="Clear cached storage handles",
                             action="clear_cache", timeout=2.0),
                RecoveryStep(id="retry_transfer", description="Retry the storage operation",
                             action="retry_request", timeout=15.0),
            ],
        ),
    ]


RETRY_ACTION = UserAction(id="retry", label="Try Again", type="primary",
                          tooltip="Attempt the operation again")
REPORT_ACTION = UserAction(id="report", label="Report Issue", type="secondary",
                           tooltip="Report this issue for investigation")

CATEGORY_GUIDANCE: dict[ErrorCategory, dict[str, Any]] = {
    ErrorCategory.NETWORK: {
        "title": "Connection Issue",
        "message": "We're having trouble connecting to our creative services. This is usually temporary.",
        "tone": "reassuring",
        "actions": [
            RETRY_ACTION,
            REPORT_ACTION,
            UserAction(id="check_connection", label="Check Connection", type="secondary",
                       tooltip="Verify your internet connection"),
        ],
    },
    ErrorCategory.VALIDATION: {
        "title": "Input Needs Attention",
        "message": "Please review and adjust your input to continue with the creative process.",
        "tone": "informative",
        "actions": [
            UserAction(id="review_input", label="Review Input", type="primary",
                       tooltip="Review and correct your input"),
            REPORT_ACTION,
        ],
    },
    ErrorCategory.QUOTA: {
        "title": "Budget Limit Reached",
        "message": "We've reached the current budget limit. Let's review options to continue your creative project.",
        "tone": "supportive",
        "actions": [
            UserAction(id="review_budget", label="Review Budget", type="primary",
                       tooltip="Check current budget and usage"),
            UserAction(id="optimize_costs", label="Optimize Costs", type="secondary",
                       tooltip="Explore cost optimization options"),
        ],
    },
}

DEFAULT_GUIDANCE: dict[str, Any] = {
    "title": "Unexpected Issue",
    "message": "Something unexpected happened. Let's get this resolved quickly.",
    "tone": "supportive",
    "actions": [RETRY_ACTION, REPORT_ACTION],
}

FALLBACK_GUIDANCE: dict[str, Any] = {
    "title": "System Issue",
    "message": "A system issue occurred. Please try refreshing or contact support if the problem persists.",
    "tone": "urgent",
    "actions": [
        UserAction(id="refresh", label="Refresh Page", type="primary", tooltip="Refresh the page to retry"),
        UserAction(id="contact_support", label="Contact Support", type="secondary",
                   tooltip="Get help from our support team"),
    ],
}

PREVENTION_TIPS: dict[ErrorCategory, list[str]] = {
    ErrorCategory.NETWORK: [
        "Ensure stable internet connection",
        "Avoid working during peak network usage times",
        "Consider using wired connection for large asset operations",
    ],
    ErrorCategory.VALIDATION: [
        "Double-check input requirements before submitting",
        "Use recommended file formats and sizes",
        "Review creative brief completeness",
    ],
    ErrorCategory.GENERATION: [
        "Start with lower quality settings for testing",
        "Ensure prompts are clear and specific",
        "Monitor resource usage during generation",
    ],
    ErrorCategory.QUOTA: [
        "Monitor budget usage regularly",
        "Plan asset generation to stay within limits",
        "Optimize quality settings for budget efficiency",
    ],
}
DEFAULT_PREVENTION_TIPS = ["Follow best practices for creative workflows"]


def _sanitize_context(context: dict[str, Any]) -> dict[str, Any]:
    """Drop values that cannot be stored in a report (callables, awaitables)."""
    clean: dict[str, Any] = {}
    for key, value in context.items():
        if callable(value) or inspect.isawaitable(value):
            continue
        if isinstance(value, dict):
            value = _sanitize_context(value)
        clean[str(key)] = value
    return clean


# ----------------------------------------------------------------------
# Orchestrator
# ----------------------------------------------------------------------

class RecoveryOrchestrator:
    """
    Handles runtime failures: classify, recover, guide, report.

    Recovery attempts run as asyncio tasks keyed by error id. Waiters await
    them through ``asyncio.shield`` so a cancelled caller does not abort a
    shared attempt, while ``cancel_session`` cancels the attempt itself.

    Example:
        >>> recovery = RecoveryOrchestrator(RecoveryConfig())
        >>> result = await recovery.handle_error(NetworkError("timeout"), {"api_call": True}, "s1")
        >>> result.recovered
        True
    """

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        classifier: ErrorClassifier | None = None,
        actions: dict[str, RecoveryAction] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Recovery configuration
            classifier: Error classifier; defaults to the keyword classifier
            actions: Extra or replacement automated actions by name
        """
        self.config = config or RecoveryConfig()
        self.classifier = classifier or ErrorClassifier()
        self._actions: dict[str, RecoveryAction] = {
            "retry_request": self._retry_request,
            "clear_cache": self._clear_cache,
            "refresh_auth": self._refresh_auth,
            "fallback_service": self._fallback_service,
            "reduce_quality": self._reduce_quality,
        }
        if actions:
            self._actions.update(actions)

        self._strategies: dict[str, RecoveryStrategy] = {s.id: s for s in default_strategies()}
        self._reports: OrderedDict[str, ErrorReport] = OrderedDict()
        self._contexts: dict[str, dict[str, Any]] = {}
        self._patterns: dict[str, ErrorPattern] = {}
        self._strategy_stats: dict[str, dict[str, int]] = {}
        self._inflight: dict[str, tuple[asyncio.Task[RecoveryAttempt], RecoveryAttempt, RecoveryStrategy]] = {}

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def register_strategy(self, strategy: RecoveryStrategy) -> None:
        """Add or replace a recovery strategy."""
        self._strategies[strategy.id] = strategy

    @property
    def strategies(self) -> list[RecoveryStrategy]:
        return list(self._strategies.values())

    def find_strategy(
        self,
        classification: ErrorClassification,
        signature: str | None = None,
    ) -> RecoveryStrategy | None:
        """
        Pick the most promising strategy for a classification.

        Args:
            classification: The error's classification
            signature: Pattern signature, consulted when effective strategies are preferred

        Returns:
            Highest ``success_probability`` applicable strategy, first registered on ties
        """
        candidates = [s for s in self._strategies.values() if s.applies_to(classification.category)]
        if not candidates:
            return None

        if self.config.prefer_effective_strategies and signature in self._patterns:
            effective = self._patterns[signature].effective_strategies
            preferred = [s for s in candidates if s.id in effective]
            if preferred:
                candidates = preferred

        return max(candidates, key=lambda s: s.success_probability)

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    async def handle_error(
        self,
        error: BaseException,
        context: dict[str, Any] | None = None,
        session_id: str = "default",
    ) -> HandleErrorResult:
        """
        Classify an error, attempt recovery and produce guidance.

        This never raises for failures inside classification or recovery;
        those produce a system-level fallback report instead.

        Args:
            error: The failure being handled
            context: Flags about the failing operation; may carry a ``retry`` callable
            session_id: Session the failure belongs to

        Returns:
            HandleErrorResult
        """
        context = dict(context or {})
        try:
            return await self._handle(error, context, session_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error handling failed for %s in session %s", type(error).__name__, session_id)
            return self._fallback_result(error, context, session_id)

    async def _handle(self, error: BaseException, context: dict[str, Any], session_id: str) -> HandleErrorResult:
        classification = self.classifier.classify(error, context)
        report = ErrorReport(
            session_id=session_id,
            error_name=type(error).__name__,
            message=str(error),
            context=_sanitize_context(context),
            classification=classification,
        )
        self._remember(report, context)
        self._count_pattern(report)

        strategy = None
        if classification.recoverable:
            strategy = self.find_strategy(classification, report.signature)

        recovered = False
        if strategy is not None:
            attempt = await self._run_attempt(report, strategy, context)
            recovered = attempt.success
        else:
            self._close(report, None, False)
        return HandleErrorResult(
            recovered=recovered,
            strategy=strategy,
            user_guidance=report.user_guidance,
            error_report=report.model_copy(deep=True),
        )

    async def retry_recovery(self, error_id: str) -> HandleErrorResult:
        """
        Retry recovery for a previously handled error.

        Joins an attempt that is still in flight instead of starting another.

        Raises:
            KeyError: If the error id is unknown
        """
        report = self._reports.get(error_id)
        if report is None:
            raise KeyError(f"Unknown error report: {error_id}")

        strategy = None
        if report.classification.recoverable:
            strategy = self.find_strategy(report.classification, report.signature)

        recovered = False
        if strategy is not None:
            attempt = await self._run_attempt(report, strategy, self._contexts.get(error_id, {}))
            recovered = attempt.success
        else:
            self._close(report, None, False)
        return HandleErrorResult(
            recovered=recovered,
            strategy=strategy,
            user_guidance=report.user_guidance,
            error_report=report.model_copy(deep=True),
        )

    async def cancel_session(self, session_id: str) -> int:
        """
        Cancel in-flight recovery attempts of a session.

        Returns:
            Number of attempts cancelled
        """
        tasks = [
            task for error_id, (task, _attempt, _strategy) in self._inflight.items()
            if error_id in self._reports and self._reports[error_id].session_id == session_id
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d recovery attempt(s) for session %s", len(tasks), session_id)
        return len(tasks)

    def forget_session(self, session_id: str) -> None:
        """Drop retained reports of a session."""
        for error_id in [i for i, r in self._reports.items() if r.session_id == session_id]:
            del self._reports[error_id]
            self._contexts.pop(error_id, None)

    async def _run_attempt(
        self,
        report: ErrorReport,
        strategy: RecoveryStrategy,
        context: dict[str, Any],
    ) -> RecoveryAttempt:
        """
        Start an attempt for the report, or join the one in flight.

        The attempt closes the report itself, so joining callers only read
        the outcome.
        """
        entry = self._inflight.get(report.id)
        if entry is None or entry[0].done():
            attempt = RecoveryAttempt(strategy_id=strategy.id)
            task = asyncio.create_task(self._execute(report, strategy, attempt, context))
            entry = (task, attempt, strategy)
            self._inflight[report.id] = entry
            task.add_done_callback(lambda t, error_id=report.id: self._release(error_id, t))
        task, attempt, strategy = entry

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                # cancelled before it ran, or after recording itself
                self._finish_cancelled(report, strategy, attempt)
                return attempt
            raise

    def _release(self, error_id: str, task: asyncio.Task[RecoveryAttempt]) -> None:
        entry = self._inflight.get(error_id)
        if entry is not None and entry[0] is task:
            del self._inflight[error_id]

    def _finish_cancelled(self, report: ErrorReport, strategy: RecoveryStrategy, attempt: RecoveryAttempt) -> None:
        if any(a is attempt for a in report.recovery_attempts):
            return
        attempt.success = False
        attempt.failure_reason = "cancelled"
        attempt.completed_at = datetime.now()
        report.recovery_attempts.append(attempt)
        self._close(report, strategy, False)

    async def _execute(
        self,
        report: ErrorReport,
        strategy: RecoveryStrategy,
        attempt: RecoveryAttempt,
        context: dict[str, Any],
    ) -> RecoveryAttempt:
        stats = self._strategy_stats.setdefault(strategy.id, {"attempts": 0, "successes": 0})
        stats["attempts"] += 1
        try:
            await asyncio.wait_for(
                self._run_steps(strategy, attempt, context),
                timeout=self.config.recovery_timeout,
            )
        except asyncio.TimeoutError:
            attempt.success = False
            attempt.failure_reason = "timeout"
            logger.warning("Recovery %s timed out for %s", strategy.id, report.id)
        except asyncio.CancelledError:
            self._finish_cancelled(report, strategy, attempt)
            raise

        attempt.completed_at = datetime.now()
        if attempt.success:
            stats["successes"] += 1
        report.recovery_attempts.append(attempt)
        self._close(report, strategy, attempt.success)
        return attempt

    async def _run_steps(self, strategy: RecoveryStrategy, attempt: RecoveryAttempt, context: dict[str, Any]) -> None:
        for step in strategy.steps:
            result = await self._run_step(step, context)
            attempt.step_results.append(result)
            if not result.success:
                attempt.failure_reason = f"step {step.id} failed: {result.error}"
                return
        attempt.success = True

    async def _run_step(self, step: RecoveryStep, context: dict[str, Any]) -> StepResult:
        started = time.monotonic()
        try:
            if step.type == "manual":
                success = await self._validate_manual(step)
            else:
                action = self._actions.get(step.action or "")
                if action is None:
                    return StepResult(step_id=step.id, success=False, error=f"unknown action: {step.action}")
                success = bool(await asyncio.wait_for(action(context), timeout=step.timeout))
        except asyncio.TimeoutError:
            return StepResult(step_id=step.id, success=False, error="timeout",
                              duration=time.monotonic() - started)
        except Exception as e:
            logger.debug("Recovery step %s raised: %s", step.id, e)
            return StepResult(step_id=step.id, success=False, error=str(e),
                              duration=time.monotonic() - started)

        return StepResult(
            step_id=step.id,
            success=success,
            error=None if success else "step reported failure",
            duration=time.monotonic() - started,
        )

    @staticmethod
    async def _validate_manual(step: RecoveryStep) -> bool:
        if step.validation_callback is None:
            return True
        result = step.validation_callback()
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=step.timeout)
        return result is not False

    def _remember(self, report: ErrorReport, context: dict[str, Any]) -> None:
        self._reports[report.id] = report
        self._contexts[report.id] = context
        while len(self._reports) > self.config.max_reports:
            evicted, _ = self._reports.popitem(last=False)
            self._contexts.pop(evicted, None)

    def _close(self, report: ErrorReport, strategy: RecoveryStrategy | None, recovered: bool) -> None:
        classification = report.classification
        if recovered:
            report.outcome = RecoveryOutcome.RECOVERED
            report.user_guidance = None
        else:
            report.user_guidance = self.generate_guidance(classification, report.context.get("locale", "en"))
            cancelled = bool(report.recovery_attempts) and report.recovery_attempts[-1].failure_reason == "cancelled"
            if classification.user_action_required and not cancelled:
                report.outcome = RecoveryOutcome.USER_RESOLVED
            else:
                report.outcome = RecoveryOutcome.FAILED
        report.closed_at = datetime.now()

        if strategy is not None and recovered:
            self._record_effective(report, strategy)
        log_recovery(
            logger,
            report.session_id,
            classification.category.value,
            strategy.id if strategy else None,
            recovered,
        )

    def _fallback_result(self, error: BaseException, context: dict[str, Any], session_id: str) -> HandleErrorResult:
        guidance = UserGuidance(**FALLBACK_GUIDANCE)
        report = ErrorReport(
            session_id=session_id,
            error_name=type(error).__name__,
            message=str(error),
            context=_sanitize_context(context),
            classification=ErrorClassification(
                category=ErrorCategory.SYSTEM,
                severity=ErrorSeverity.CRITICAL,
                recoverable=False,
                user_action_required=True,
                affected_systems=("error_recovery_system",),
            ),
            user_guidance=guidance,
            outcome=RecoveryOutcome.FAILED,
            closed_at=datetime.now(),
        )
        self._remember(report, context)
        return HandleErrorResult(recovered=False, user_guidance=guidance, error_report=report.model_copy(deep=True))

    # ------------------------------------------------------------------
    # Guidance
    # ------------------------------------------------------------------

    @staticmethod
    def generate_guidance(classification: ErrorClassification, locale: str = "en") -> UserGuidance:
        """Build user guidance for an unrecovered error."""
        table = CATEGORY_GUIDANCE.get(classification.category, DEFAULT_GUIDANCE)
        return UserGuidance(
            title=table["title"],
            message=table["message"],
            tone=table["tone"],
            actions=[a.model_copy() for a in table["actions"]],
            locale=locale,
        )

    def provide_guidance(self, issue_description: str, context: dict[str, Any] | None = None) -> UserGuidance:
        """
        Guidance for an issue the user describes in their own words.

        Args:
            issue_description: Free-text description of the problem
            context: Optional flags; ``locale`` selects the guidance locale

        Returns:
            UserGuidance
        """
        locale = (context or {}).get("locale", "en")
        issue = issue_description.lower()
        if "slow" in issue or "loading" in issue:
            return UserGuidance(
                title="Performance Optimization",
                message="Slow loading times can usually be improved. Let's optimize your creative workflow.",
                tone="supportive",
                actions=[
                    UserAction(id="optimize_assets", label="Optimize Assets", type="primary"),
                    UserAction(id="reduce_quality", label="Reduce Quality", type="secondary"),
                ],
                locale=locale,
            )
        if "quality" in issue or "result" in issue:
            return UserGuidance(
                title="Quality Enhancement",
                message="Let's refine the approach together to reach the quality you expect.",
                tone="supportive",
                actions=[
                    UserAction(id="adjust_parameters", label="Adjust Parameters", type="primary"),
                    UserAction(id="try_different_style", label="Try Different Style", type="secondary"),
                ],
                locale=locale,
            )
        return UserGuidance(
            title="Creative Assistance",
            message="Let's work through this creative challenge together.",
            tone="supportive",
            actions=[
                UserAction(id="discuss_issue", label="Discuss Issue", type="primary"),
                UserAction(id="alternative_approach", label="Alternative Approach", type="secondary"),
            ],
            locale=locale,
        )

    # ------------------------------------------------------------------
    # Patterns and analytics
    # ------------------------------------------------------------------

    def _pattern_for(self, report: ErrorReport) -> ErrorPattern:
        signature = report.signature
        pattern = self._patterns.get(signature)
        if pattern is None:
            category = report.classification.category
            pattern = ErrorPattern(
                signature=signature,
                category=category,
                common_causes=[category.value],
                user_impact=report.classification.severity.user_impact,
                prevention_tips=list(PREVENTION_TIPS.get(category, DEFAULT_PREVENTION_TIPS)),
            )
            self._patterns[signature] = pattern
        return pattern

    def _count_pattern(self, report: ErrorReport) -> None:
        """Count one occurrence; retries of the same report are not occurrences."""
        pattern = self._pattern_for(report)
        pattern.frequency += 1
        pattern.last_seen = datetime.now()

    def _record_effective(self, report: ErrorReport, strategy: RecoveryStrategy) -> None:
        pattern = self._pattern_for(report)
        if strategy.id not in pattern.effective_strategies:
            pattern.effective_strategies.append(strategy.id)

    def get_reports(self, session_id: str | None = None) -> list[ErrorReport]:
        """Retained reports, oldest first, optionally for one session."""
        return [
            r.model_copy(deep=True) for r in self._reports.values()
            if session_id is None or r.session_id == session_id
        ]

    def get_report(self, error_id: str) -> ErrorReport | None:
        report = self._reports.get(error_id)
        return report.model_copy(deep=True) if report is not None else None

    def get_patterns(self) -> list[ErrorPattern]:
        return sorted(
            (p.model_copy(deep=True) for p in self._patterns.values()),
            key=lambda p: p.frequency,
            reverse=True,
        )

    def get_error_analytics(self) -> ErrorAnalytics:
        """
        Summarize handled errors.

        Returns:
            ErrorAnalytics with the recovery rate, common patterns, recent
            per-category trends and recommendations
        """
        reports = list(self._reports.values())
        total = len(reports)
        recovered = sum(1 for r in reports if r.outcome == RecoveryOutcome.RECOVERED)
        recovery_rate = recovered / total if total else 0.0

        common = sorted(
            (p for p in self._patterns.values() if p.frequency >= self.config.pattern_threshold),
            key=lambda p: p.frequency,
            reverse=True,
        )[:10]

        counts: Counter[ErrorCategory] = Counter()
        recovered_counts: Counter[ErrorCategory] = Counter()
        for r in reports[-50:]:
            counts[r.classification.category] += 1
            if r.outcome == RecoveryOutcome.RECOVERED:
                recovered_counts[r.classification.category] += 1
        trends = [
            CategoryTrend(category=c, count=n, recovery_rate=recovered_counts[c] / n)
            for c, n in counts.items()
        ]

        recommendations = []
        if total and recovery_rate < 0.6:
            recommendations.append("Consider improving automatic recovery strategies")
        if any(p.frequency > 10 for p in common):
            recommendations.append("Address frequently occurring error patterns")
        if any(t.category == ErrorCategory.NETWORK and t.count > 5 for t in trends):
            recommendations.append("Investigate network connectivity issues")
        if total > 50:
            recommendations.append("Consider proactive error prevention measures")
        for p in common:
            if not p.effective_strategies:
                recommendations.append(f"Pattern '{p.signature}' has no effective recovery strategy")
        if not recommendations:
            recommendations.append("Error handling is performing well")

        return ErrorAnalytics(
            total_errors=total,
            recovery_rate=recovery_rate,
            common_patterns=[
                PatternSummary(signature=p.signature, frequency=p.frequency, category=p.category)
                for p in common
            ],
            recent_trends=trends,
            strategy_stats={k: dict(v) for k, v in self._strategy_stats.items()},
            recommendations=recommendations,
        )

    def health_check(self) -> bool:
        """Check that classification, strategy lookup and guidance work end to end."""
        try:
            classification = self.classifier.classify(Exception("Test network timeout error"), {"api_call": True})
            strategy = self.find_strategy(classification)
            guidance = self.generate_guidance(classification)
        except Exception:
            logger.exception("Recovery health check failed")
            return False
        healthy = (
            classification.category == ErrorCategory.NETWORK
            and strategy is not None
            and len(guidance.actions) > 0
        )
        logger.info("Recovery health check: %s", "PASS" if healthy else "FAIL")
        return healthy

    # ------------------------------------------------------------------
    # Automated actions
    # ------------------------------------------------------------------

    async def _retry_request(self, context: dict[str, Any]) -> bool:
        retry = context.get("retry")
        if retry is None:
            return True
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self.config.retry_backoff_min,
                max=self.config.retry_backoff_max,
            ),
            reraise=True,
        ):
            with attempt:
                result = retry()
                if inspect.isawaitable(result):
                    result = await result
        return True

    async def _clear_cache(self, context: dict[str, Any]) -> bool:
        cache = context.get("cache")
        if isinstance(cache, dict):
            cache.clear()
        logger.debug("Cleared cache")
        return True

    async def _refresh_auth(self, context: dict[str, Any]) -> bool:
        logger.debug("Refreshed authentication")
        return True

    async def _fallback_service(self, context: dict[str, Any]) -> bool:
        logger.debug("Switched to fallback service")
        return True

    async def _reduce_quality(self, context: dict[str, Any]) -> bool:
        logger.debug("Reduced generation quality")
        return True
