"""Jobs - Command implementations wiring settings to the distribution pipeline."""

from incentive_distributor.jobs.batch_send import load_distribution, resolve_send_mode, run_batch_send
from incentive_distributor.jobs.lp_incentives import (
    LpIncentivesResult,
    Period,
    compute_lp_incentives,
    resolve_period,
    run_lp_incentives,
)

__all__ = [
    "LpIncentivesResult",
    "Period",
    "compute_lp_incentives",
    "load_distribution",
    "resolve_period",
    "resolve_send_mode",
    "run_batch_send",
    "run_lp_incentives",
]
