# --- Standard library imports ---
from typing import Optional

# --- Project imports ---
from .config import Config
from .logger import get_logger


class SchedulingPolicy:
    """
    Fixed-interval schedule for the reconciliation loop.

    No jitter and no backoff: a failed cycle waits exactly as long as a
    successful one.
    """

    def __init__(
        self,
        interval: Optional[float] = None,
        enforce: Optional[bool] = None,
    ):
        self.requested_interval = Config.CYCLE_INTERVAL if interval is None else interval
        self.min_interval = Config.MIN_CYCLE_INTERVAL
        self.enforce_policy = Config.ENFORCE_MIN_INTERVAL if enforce is None else enforce
        self.logger = get_logger("scheduling_policy")

    def effective_runtime_interval(self) -> float:
        """
        Returns the final runtime interval that will be used for scheduling.

        When enforcement is enabled, guarantees:
            interval >= MIN_CYCLE_INTERVAL
        """
        if self.requested_interval >= self.min_interval:
            return self.requested_interval

        # --- Production enforcement ---
        if self.enforce_policy:
            self.logger.warning(
                "CYCLE_INTERVAL=%ss is below safe minimum (%ss). Enforcing %ss.",
                self.requested_interval,
                self.min_interval,
                self.min_interval,
            )
            return self.min_interval

        # --- Testing mode: warn if unsafe, but do not enforce ---
        self.logger.debug(
            "CYCLE_INTERVAL=%ss is below minimum (%ss). Allowed because ENFORCE_MIN_INTERVAL=false.",
            self.requested_interval,
            self.min_interval,
        )
        return self.requested_interval

    def next_sleep(self, elapsed: float) -> float:
        return max(0.0, self.effective_runtime_interval() - elapsed)
