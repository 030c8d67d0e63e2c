# --- Standard library imports ---
import sys
import signal
import logging
import threading

# --- Project imports ---
from .config import Config, load_app_config
from .logger import get_logger, setup_logging
from .cache import load_status_snapshot, store_status_snapshot
from .server import ControlServer
from .status import StatusSnapshot, StatusStore
from .time_service import TimeService
from .scheduling_policy import SchedulingPolicy
from .reconciler import DnsReconciler, ReconciliationLoop


def log_snapshot(snapshot: StatusSnapshot, time_service: TimeService) -> None:
    """Status observer: one summary line per published snapshot."""
    logger = get_logger("status")
    pc = {True: "online", False: "offline", None: "unknown"}[snapshot.current_pc_online]
    logger.info(
        f"📋 public={snapshot.current_public_ip or '—'} | "
        f"dns={snapshot.current_dns_ip or '—'} | pc={pc} | "
        f"next={time_service.format_local(snapshot.next_check_at)}"
    )

def main():
    """
    Entry point for the home control plane.

    Configures logging, wires the shared status store into the control
    server and the reconciliation loop, and runs until SIGINT/SIGTERM.
    """

    # Setup logging policy
    setup_logging(level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO))
    logger = get_logger("main")
    logger.info("🚀 Starting home control plane")
    logger.debug(f"Python version: {sys.version}")

    # Shared state (seeded from the last status file) + external observers
    time_service = TimeService()
    status = StatusStore(load_status_snapshot())
    status.subscribe(lambda snapshot: log_snapshot(snapshot, time_service))
    status.subscribe(store_status_snapshot)

    # Control server (settings read once here)
    server = ControlServer(load_app_config(), status)
    server.start()

    # Reconciliation loop (settings re-read every cycle)
    policy = SchedulingPolicy()
    reconciler = DnsReconciler(status, policy=policy, time_service=time_service)
    loop = ReconciliationLoop(reconciler, policy)
    loop.start()

    shutdown = threading.Event()

    def request_shutdown(signum, _frame):
        logger.info(f"Received {signal.Signals(signum).name}; shutting down")
        shutdown.set()

    signal.signal(signal.SIGINT, request_shutdown)
    signal.signal(signal.SIGTERM, request_shutdown)

    while not shutdown.wait(1.0):
        pass

    loop.stop(timeout=5)
    server.stop(timeout=5)
    logger.info("👋 Home control plane stopped")

if __name__ == "__main__":
    main()
