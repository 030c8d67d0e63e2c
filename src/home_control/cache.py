# --- Standard library imports ---
import json
from pathlib import Path
from typing import Optional

# --- Project imports ---
from .config import Config
from .logger import get_logger
from .status import StatusSnapshot


logger = get_logger("cache")

# --- Latest status snapshot (no history) ---
def load_status_snapshot(path: Optional[Path] = None) -> Optional[StatusSnapshot]:
    """
    Return the last published status snapshot from the local file.

    Missing or corrupt files are treated as "no snapshot yet".
    """
    path = Path(path or Config.STATUS_FILE)
    try:
        return StatusSnapshot.from_dict(json.loads(path.read_text()))
    except (OSError, AttributeError, TypeError, ValueError):
        return None

def store_status_snapshot(
    snapshot: StatusSnapshot,
    path: Optional[Path] = None,
) -> bool:
    """
    Overwrite the status file with the given snapshot.

    Best-effort only: failures are logged and reported as False.
    """
    path = Path(path or Config.STATUS_FILE)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(snapshot.to_dict(), indent=2))
        return True
    except OSError as e:
        logger.warning(f"Status file write failed [{path}] ({e.__class__.__name__})")
        return False
