"""
Display Rule Evaluator.

Decides whether a campaign may appear on a page view. Evaluation order:
1. enforce_verified_only (unverified visitors are rejected)
2. URL deny, then URL allow
3. Referrer deny, then referrer allow
4. Geo deny, then geo allow
5. Behavioural triggers (a separate gate, OR'd)

A deny match wins regardless of the allow outcome. A non-empty allow-list
requires at least one match; a missing referrer or geo code matches nothing.
Evaluation is pure: no I/O and no state.
"""

from __future__ import annotations

from dataclasses import dataclass

from ...models.campaigns import DisplayRules, TriggerRules
from ...models.context import PageContext
from .patterns import matches_any, url_matches_any


@dataclass(frozen=True)
class RuleEvaluation:
    """Outcome of evaluating display rules against a page context."""

    eligible: bool
    trigger_satisfied: bool
    reason: str | None = None

    @property
    def passed(self) -> bool:
        """Targeting and triggers both pass."""
        return self.eligible and self.trigger_satisfied

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "trigger_satisfied": self.trigger_satisfied,
            "passed": self.passed,
            "reason": self.reason,
        }


class DisplayRuleEvaluator:
    """
    Evaluates campaign display rules against page contexts.

    Stateless; one instance may be shared across sessions.
    """

    def evaluate(self, rules: DisplayRules, context: PageContext) -> RuleEvaluation:
        """
        Evaluate targeting and trigger rules.

        Args:
            rules: Campaign display rules
            context: Current page view

        Returns:
            RuleEvaluation with the first failing reason, if any
        """
        targeting_failure = self._targeting_failure(rules, context)
        trigger_satisfied = self.triggers_satisfied(rules.triggers, context)

        reason = targeting_failure
        if reason is None and not trigger_satisfied:
            reason = "trigger_not_met"

        return RuleEvaluation(
            eligible=targeting_failure is None,
            trigger_satisfied=trigger_satisfied,
            reason=reason,
        )

    def is_eligible(self, rules: DisplayRules, context: PageContext) -> bool:
        """Convenience: targeting and triggers both pass."""
        return self.evaluate(rules, context).passed

    def _targeting_failure(self, rules: DisplayRules, context: PageContext) -> str | None:
        if rules.enforce_verified_only and not context.is_verified_visitor:
            return "visitor_not_verified"

        if rules.url_deny and url_matches_any(context.url, rules.url_deny):
            return "url_denied"
        if rules.url_allow and not url_matches_any(context.url, rules.url_allow):
            return "url_not_allowed"

        if rules.referrer_deny and matches_any(context.referrer, rules.referrer_deny):
            return "referrer_denied"
        if rules.referrer_allow and not matches_any(context.referrer, rules.referrer_allow):
            return "referrer_not_allowed"

        if rules.geo_deny and matches_any(context.geo_code, rules.geo_deny):
            return "geo_denied"
        if rules.geo_allow and not matches_any(context.geo_code, rules.geo_allow):
            return "geo_not_allowed"

        return None

    @staticmethod
    def triggers_satisfied(triggers: TriggerRules, context: PageContext) -> bool:
        """
        Check behavioural triggers.

        Configured triggers are OR'd; no configured trigger means satisfied.
        """
        if not triggers.is_configured():
            return True

        if triggers.min_time_on_page_ms > 0 and (
            context.time_on_page_ms >= triggers.min_time_on_page_ms
        ):
            return True
        if triggers.scroll_depth_pct > 0 and context.scroll_depth_pct >= triggers.scroll_depth_pct:
            return True
        if triggers.exit_intent and context.exit_intent:
            return True
        return False
