# --- Standard library imports ---
import logging
from typing import Optional


def tlog(
    logger: logging.Logger,
    emoji: str,
    subsystem: str,
    state: str,
    primary: str = "—--",
    meta: Optional[str] = None,
) -> None:
    """
    Emit a standardized telemetry log "tlog" line.

    Format:
        SUBSYSTEM STATE PRIMARY | meta data
    """
    msg = f"{subsystem:<12} {state:<12} {primary:<24}"
    if meta:
        msg += f" | {meta}"

    logger.info(f"{emoji} {msg}", stacklevel=2)
