# --- Standard library imports ---
import time
import threading
from enum import Enum, auto
from typing import Callable, Optional

# --- Project imports ---
from .config import AppConfig, load_app_config
from .telemetry import tlog
from .logger import get_logger
from .power import is_online
from .errors import DnsUpdateError
from .status import StatusStore
from .time_service import TimeService
from .cloudflare import CloudflareClient
from .notifier import TelegramNotifier
from .scheduling_policy import SchedulingPolicy
from .utils import get_ip, doh_lookup, Timer


class CycleOutcome(Enum):
    UPDATED = auto()
    IN_SYNC = auto()
    PUBLIC_IP_UNKNOWN = auto()
    DNS_UNKNOWN = auto()
    UPDATE_FAILED = auto()
    ERROR = auto()

    @property
    def label(self) -> str:
        return self.name.replace("_", " ")


class DnsReconciler:
    """
    Keeps the Cloudflare A record in line with the host's public IP and
    refreshes the shared status on every cycle.

    Each step writes its own status field as soon as it is known, so a
    failure further down never hides what was already observed. The
    snapshot is published whatever the outcome.
    """

    def __init__(
        self,
        status: StatusStore,
        policy: Optional[SchedulingPolicy] = None,
        config_loader: Callable[[], AppConfig] = load_app_config,
        ip_resolver: Callable[[], Optional[str]] = get_ip,
        dns_resolver: Callable[[str], Optional[str]] = doh_lookup,
        probe: Callable[[str, int], bool] = is_online,
        client_factory: Callable[[AppConfig], CloudflareClient] = CloudflareClient,
        notifier_factory: Callable[[AppConfig], TelegramNotifier] = TelegramNotifier.from_config,
        time_service: Optional[TimeService] = None,
    ):
        self.status = status
        self.policy = policy or SchedulingPolicy()
        self.config_loader = config_loader
        self.ip_resolver = ip_resolver
        self.dns_resolver = dns_resolver
        self.probe = probe
        self.client_factory = client_factory
        self.notifier_factory = notifier_factory
        self.time = time_service or TimeService()

        self.logger = get_logger("reconciler")
        self.timer = Timer(self.logger)
        self.loop = 1

    def run_cycle(self) -> CycleOutcome:
        """
        Single reconciliation cycle.

        Workflow:
        1. Reload settings
        2. Stamp last/next check times
        3. Probe the PC
        4. Detect the public IP (abort if unknown)
        5. Resolve the record via DoH (abort if unknown)
        6. Update Cloudflare and notify only on mismatch
        7. Publish the snapshot (always)
        """
        try:
            return self._run_cycle()
        finally:
            self.status.publish()
            self.timer.end_cycle()
            self.loop += 1

    def _run_cycle(self) -> CycleOutcome:
        self.timer.start_cycle()

        # --- Settings (fresh every cycle) ---
        config = self.config_loader()
        self.timer.lap("config_loader()")

        # --- Schedule bookkeeping ---
        now, next_at = self.time.schedule(self.policy.effective_runtime_interval())
        self.status.set("last_check_at", now)
        self.status.set("next_check_at", next_at)
        tlog(
            self.logger,
            "🔁",
            "LOOP",
            "START",
            primary=self.time.heartbeat_string(now),
            meta=f"loop={self.loop}",
        )

        # --- PC reachability ---
        try:
            online = self.probe(config.pc_ip_address, config.pc_probe_port)
        except Exception as e:
            self.logger.warning(f"PC probe failed ({type(e).__name__}: {e})")
            online = None
        self.status.set("current_pc_online", online)
        self.timer.lap("probe()")
        tlog(
            self.logger,
            {True: "🟢", False: "🔴", None: "🟡"}[online],
            "PC",
            {True: "ONLINE", False: "OFFLINE", None: "UNKNOWN"}[online],
            primary=f"ip={config.pc_ip_address}",
            meta=f"port={config.pc_probe_port}",
        )

        # --- Public IP ---
        public_ip = self.ip_resolver()
        self.status.set("current_public_ip", public_ip)
        self.timer.lap("ip_resolver()")

        if not public_ip:
            tlog(self.logger, "🔴", "PUBLIC_IP", "FAIL", primary="all providers failed")
            return CycleOutcome.PUBLIC_IP_UNKNOWN
        tlog(self.logger, "🟢", "PUBLIC_IP", "OK", primary=f"ip={public_ip}")

        # --- DNS (DoH, authoritative) ---
        dns_ip = self.dns_resolver(config.cloudflare_record_name)
        self.status.set("current_dns_ip", dns_ip)
        self.timer.lap("dns_resolver()")

        if not dns_ip:
            tlog(
                self.logger,
                "🔴",
                "DNS",
                "FAIL",
                primary=f"dns={config.cloudflare_record_name}",
            )
            return CycleOutcome.DNS_UNKNOWN

        if dns_ip == public_ip:
            tlog(self.logger, "🟢", "DNS", "VERIFIED", primary=f"ip={dns_ip}")
            return CycleOutcome.IN_SYNC

        # --- Mutation required ---
        client = self.client_factory(config)
        try:
            client.update_dns(public_ip)
        except DnsUpdateError as e:
            self.logger.error(f"Cloudflare DNS update failed; deferring to next cycle ({e})")
            return CycleOutcome.UPDATE_FAILED
        self.timer.lap("client.update_dns()")

        tlog(
            self.logger,
            "🟢",
            "CLOUDFLARE",
            "UPDATED",
            primary=f"dns={config.cloudflare_record_name}",
            meta=f"{dns_ip} → {public_ip}",
        )

        self.notifier_factory(config).send(
            f"Public IP changed from {dns_ip} to {public_ip}"
        )
        self.timer.lap("notifier.send()")
        return CycleOutcome.UPDATED


class ReconciliationLoop:
    """
    Supervisor loop running DnsReconciler.run_cycle() on a background thread.

    Unexpected exceptions are logged at the cycle boundary and never end the
    loop. stop() wakes the sleep immediately.
    """

    def __init__(self, reconciler: DnsReconciler, policy: Optional[SchedulingPolicy] = None):
        self.reconciler = reconciler
        self.policy = policy or reconciler.policy
        self.logger = get_logger("main_loop")
        self.last_outcome: Optional[CycleOutcome] = None
        self.cycles = 0

        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._loop, name="reconciliation-loop", daemon=True
        )

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout)

    def _loop(self) -> None:
        while not self._stop.is_set():
            start = time.monotonic()

            try:
                outcome = self.reconciler.run_cycle()
            except Exception as e:
                self.logger.exception(f"Unhandled exception during run cycle: {e}")
                outcome = CycleOutcome.ERROR

            self.last_outcome = outcome
            self.cycles += 1

            remaining = self.policy.next_sleep(time.monotonic() - start)
            self.logger.info(f"🛜 Cycle outcome [{outcome.label}]")
            self.logger.info(f"💤 Sleeping ... {remaining:.2f} s")
            self._stop.wait(remaining)
