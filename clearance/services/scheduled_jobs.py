"""
Smart Clearance
Scheduled Jobs — concrete jobs run by SchedulerService.

Jobs:
    - escalation_sweep: escalates open requests past their processing threshold
"""

from __future__ import annotations

from typing import Any

from clearance.services.scheduler_service import register_job


@register_job("escalation_sweep")
def escalation_sweep(app) -> dict[str, Any]:
    """Escalate open requests that have waited longer than their threshold at one stage."""
    from clearance.services.escalation import EscalationService

    return EscalationService.sweep()
