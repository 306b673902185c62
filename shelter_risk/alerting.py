"""
Shelter Risk Engine - Alerting.

============================================================
PURPOSE
============================================================
Detects severity threshold crossings between a stored score
and a freshly computed one, and builds the alert events that
the notification layer delivers.

Provides:
- ThresholdCrossingDetector
- Recommended actions per tier and reason
- LoggingAlertSink for development and audit logs

============================================================
ALERT PHILOSOPHY
============================================================
- Alert when a score rises past the ELEVATED, HIGH or
  CRITICAL boundary
- Only the highest boundary crossed produces an alert
- No previous score means nothing to compare: no alert
- Recoveries are opt-in (AlertingConfig.alert_on_recovery)

============================================================
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .config import AlertingConfig, SeverityThresholds
from .types import AlertType, RiskAlert, RiskReason, RiskSeverity


logger = logging.getLogger(__name__)


SEVERITY_RECOMMENDED_ACTIONS: Dict[RiskSeverity, Tuple[str, ...]] = {
    RiskSeverity.CRITICAL: (
        "Review placement options today",
        "Notify rescue and transfer partners",
    ),
    RiskSeverity.HIGH: (
        "Prioritize for adoption events and featured listings",
    ),
    RiskSeverity.ELEVATED: (
        "Increase listing visibility",
    ),
}

REASON_RECOMMENDED_ACTIONS: Dict[RiskReason, str] = {
    RiskReason.LONG_LOS: "Consider foster placement to relieve kennel time",
    RiskReason.MEDICAL_CRITICAL: "Schedule veterinary review of untreatable condition",
    RiskReason.MEDICAL_URGENT: "Complete overdue or imminent medical follow-up",
    RiskReason.KENNEL_STRESS: "Start an enrichment or decompression plan",
    RiskReason.BEHAVIORAL_DECLINE: "Request a behavior consultation",
    RiskReason.CAPACITY_PRESSURE: "Contact transfer partners about intake relief",
    RiskReason.LOW_INTEREST: "Refresh photos and profile description",
}


def recommended_actions(
    severity: RiskSeverity,
    reasons: Iterable[RiskReason],
) -> Tuple[str, ...]:
    """Actions for a tier followed by reason-specific actions."""
    actions: List[str] = list(SEVERITY_RECOMMENDED_ACTIONS.get(severity, ()))
    for reason in reasons:
        action = REASON_RECOMMENDED_ACTIONS.get(reason)
        if action is not None:
            actions.append(action)
    return tuple(dict.fromkeys(actions))


# ============================================================
# THRESHOLD-CROSSING DETECTOR
# ============================================================


class ThresholdCrossingDetector:
    """
    Compares a stored score with a new score against tier boundaries.

    ============================================================
    LOGIC
    ============================================================
    Boundaries are checked most severe first (critical, high,
    elevated). An upward crossing is `previous < boundary <= new`.
    The first boundary matched produces the single alert.

    With alert_on_recovery, a drop `new < boundary <= previous`
    produces a RECOVERED alert for the first boundary left.

    ============================================================
    """

    def __init__(
        self,
        thresholds: Optional[SeverityThresholds] = None,
        config: Optional[AlertingConfig] = None,
    ):
        self._thresholds = thresholds or SeverityThresholds()
        self._config = config or AlertingConfig()

    def detect(
        self,
        animal_id: str,
        previous_score: Optional[int],
        new_score: int,
        reasons: Iterable[RiskReason] = (),
        organization_id: Optional[str] = None,
    ) -> Optional[RiskAlert]:
        """
        Detect a threshold crossing.

        Args:
            animal_id: Animal being rescored
            previous_score: Stored score, None on first scoring
            new_score: Freshly computed (effective) score
            reasons: Current triggering reasons
            organization_id: Owning organization, carried on the alert

        Returns:
            RiskAlert, or None when no boundary was crossed
        """
        if previous_score is None:
            return None

        reasons = tuple(reasons)
        boundaries = self._thresholds.alert_boundaries()

        for severity, boundary in boundaries:
            if new_score >= boundary > previous_score:
                return self._build_alert(
                    AlertType.THRESHOLD_CROSSED, severity,
                    animal_id, previous_score, new_score, reasons, organization_id,
                )

        if self._config.alert_on_recovery:
            for severity, boundary in boundaries:
                if previous_score >= boundary > new_score:
                    return self._build_alert(
                        AlertType.RECOVERED, severity,
                        animal_id, previous_score, new_score, reasons, organization_id,
                    )

        return None

    def _build_alert(
        self,
        alert_type: AlertType,
        severity: RiskSeverity,
        animal_id: str,
        previous_score: int,
        new_score: int,
        reasons: Tuple[RiskReason, ...],
        organization_id: Optional[str],
    ) -> RiskAlert:
        previous_severity = self._thresholds.classify(previous_score)
        new_severity = self._thresholds.classify(new_score)

        if alert_type == AlertType.THRESHOLD_CROSSED:
            message = (
                f"Animal {animal_id} reached {severity.value} urgency "
                f"({previous_score} -> {new_score})"
            )
            actions = recommended_actions(new_severity, reasons)
        else:
            message = (
                f"Animal {animal_id} is no longer {severity.value} "
                f"({previous_score} -> {new_score})"
            )
            actions = ()

        return RiskAlert(
            animal_id=animal_id,
            organization_id=organization_id,
            alert_type=alert_type,
            severity=severity,
            previous_score=previous_score,
            new_score=new_score,
            previous_severity=previous_severity,
            new_severity=new_severity,
            triggering_reasons=reasons,
            message=message,
            recommended_actions=actions,
        )


# ============================================================
# LOGGING ALERT SINK
# ============================================================


class LoggingAlertSink:
    """
    Writes alerts to the log (for development and audit trails).
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    async def publish(self, alert: RiskAlert) -> None:
        level = logging.WARNING if alert.alert_type == AlertType.THRESHOLD_CROSSED else logging.INFO
        self._log.log(
            level,
            f"RISK ALERT [{alert.severity.value}] {alert.message}; "
            f"reasons={[r.value for r in alert.triggering_reasons]}",
        )
