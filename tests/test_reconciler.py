import time
import pytest
import responses
from datetime import timedelta
from unittest.mock import Mock

from home_control.errors import DnsUpdateError
from home_control.status import StatusStore
from home_control.scheduling_policy import SchedulingPolicy
from home_control.reconciler import CycleOutcome, DnsReconciler, ReconciliationLoop


RECORD_URL = "https://api.cloudflare.com/client/v4/zones/aaa111/dns_records/fff000"

AUTH_FAILURE_BODY = {
    "success": False,
    "errors": [{"code": 9109, "message": "Invalid access token"}],
}

SUCCESS_BODY = {
    "success": True,
    "result": {"id": "fff000", "type": "A", "content": "203.0.113.7"},
}


# ========
# FIXTURES
# ========
@pytest.fixture
def status():
    return StatusStore()


@pytest.fixture
def client():
    return Mock()


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def make_reconciler(status, client, notifier, make_config):
    """Reconciler with every external collaborator stubbed."""
    def _make(public_ip="203.0.113.7", dns_ip="203.0.113.1", online=True, **overrides):
        config = overrides.pop("config", make_config())
        kwargs = {
            "policy": SchedulingPolicy(interval=300, enforce=False),
            "config_loader": Mock(return_value=config),
            "ip_resolver": Mock(return_value=public_ip),
            "dns_resolver": Mock(return_value=dns_ip),
            "probe": Mock(return_value=online),
            "client_factory": Mock(return_value=client),
            "notifier_factory": Mock(return_value=notifier),
        }
        kwargs.update(overrides)
        return DnsReconciler(status, **kwargs)

    return _make


# =============================
# TEST GROUP: Reconciliation Cycle
# =============================
# Function: DnsReconciler.run_cycle()
# -----------------------------------
def test_mismatch_updates_dns_and_notifies_once(make_reconciler, client, notifier, status):
    reconciler = make_reconciler(public_ip="203.0.113.7", dns_ip="203.0.113.1")

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.UPDATED
    client.update_dns.assert_called_once_with("203.0.113.7")
    notifier.send.assert_called_once_with("Public IP changed from 203.0.113.1 to 203.0.113.7")
    assert status.get("current_public_ip") == "203.0.113.7"
    assert status.get("current_dns_ip") == "203.0.113.1"
    assert status.get("current_pc_online") is True


def test_match_is_a_no_op(make_reconciler, client, notifier):
    reconciler = make_reconciler(public_ip="203.0.113.7", dns_ip="203.0.113.7")

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.IN_SYNC
    client.update_dns.assert_not_called()
    notifier.send.assert_not_called()


def test_unknown_public_ip_aborts_before_dns_lookup(make_reconciler, client, status):
    reconciler = make_reconciler(public_ip=None)

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.PUBLIC_IP_UNKNOWN
    reconciler.dns_resolver.assert_not_called()
    client.update_dns.assert_not_called()
    assert status.get("current_public_ip") is None
    assert status.get("last_check_at") is not None


def test_unknown_dns_ip_aborts_before_update(make_reconciler, client, notifier, status):
    reconciler = make_reconciler(dns_ip=None)

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.DNS_UNKNOWN
    client.update_dns.assert_not_called()
    notifier.send.assert_not_called()
    # Partial progress is still recorded
    assert status.get("current_public_ip") == "203.0.113.7"
    assert status.get("current_dns_ip") is None


def test_update_failure_is_deferred_without_notification(make_reconciler, client, notifier):
    client.update_dns.side_effect = DnsUpdateError("HTTP 500", status_code=500)
    reconciler = make_reconciler()

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.UPDATE_FAILED
    client.update_dns.assert_called_once()
    notifier.send.assert_not_called()


@pytest.mark.parametrize(
    "probe, expected_online",
    [
        # ✅ Reachable
        (Mock(return_value=True), True),

        # ❌ Unreachable
        (Mock(return_value=False), False),

        # ⚠️ Probe error → unknown, not offline
        (Mock(side_effect=OSError("boom")), None),
    ],
)

def test_pc_online_refresh(make_reconciler, status, probe, expected_online):
    reconciler = make_reconciler(probe=probe)

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.UPDATED
    assert status.get("current_pc_online") is expected_online


def test_schedule_recorded_with_fixed_interval(make_reconciler, status):
    reconciler = make_reconciler(policy=SchedulingPolicy(interval=300, enforce=False))

    reconciler.run_cycle()

    last = status.get("last_check_at")
    nxt = status.get("next_check_at")
    assert nxt - last == timedelta(seconds=300)


def test_config_reloaded_every_cycle(make_reconciler, make_config, client):
    loader = Mock(side_effect=[
        make_config(cloudflare_record_name="old.starbase.com"),
        make_config(cloudflare_record_name="new.starbase.com"),
    ])
    reconciler = make_reconciler(config_loader=loader)

    reconciler.run_cycle()
    reconciler.run_cycle()

    assert loader.call_count == 2
    reconciler.dns_resolver.assert_called_with("new.starbase.com")


@pytest.mark.parametrize("public_ip", [None, "203.0.113.7"])
def test_snapshot_published_every_cycle(make_reconciler, status, public_ip):
    observer = Mock()
    status.subscribe(observer)
    reconciler = make_reconciler(public_ip=public_ip)

    reconciler.run_cycle()

    observer.assert_called_once()
    assert observer.call_args.args[0].current_public_ip == public_ip


def test_snapshot_published_even_when_cycle_raises(make_reconciler, status):
    observer = Mock()
    status.subscribe(observer)
    reconciler = make_reconciler(config_loader=Mock(side_effect=RuntimeError("settings store down")))

    with pytest.raises(RuntimeError):
        reconciler.run_cycle()

    observer.assert_called_once()


# ======================================
# TEST GROUP: Credential Fallback (HTTP)
# ======================================
@responses.activate
def test_token_rejected_retries_once_with_email_key(make_reconciler, make_config, notifier):
    """Auth failure on the token → exactly one retry with email/key"""
    responses.add(responses.PATCH, RECORD_URL, json=AUTH_FAILURE_BODY, status=403)
    responses.add(responses.PATCH, RECORD_URL, json=AUTH_FAILURE_BODY, status=403)

    config = make_config(
        cloudflare_api_token="bad_token",
        cloudflare_api_email="ops@starbase.com",
        cloudflare_api_key="global_key",
    )
    from home_control.cloudflare import CloudflareClient
    reconciler = make_reconciler(config=config, client_factory=CloudflareClient)

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.UPDATE_FAILED
    assert len(responses.calls) == 2
    first, second = (call.request.headers for call in responses.calls)
    assert first["Authorization"] == "Bearer bad_token"
    assert "X-Auth-Email" not in first
    assert second["X-Auth-Email"] == "ops@starbase.com"
    assert second["X-Auth-Key"] == "global_key"
    notifier.send.assert_not_called()


@responses.activate
def test_fallback_success_notifies(make_reconciler, make_config, notifier):
    responses.add(responses.PATCH, RECORD_URL, json=AUTH_FAILURE_BODY, status=403)
    responses.add(responses.PATCH, RECORD_URL, json=SUCCESS_BODY, status=200)

    config = make_config(
        cloudflare_api_email="ops@starbase.com",
        cloudflare_api_key="global_key",
    )
    from home_control.cloudflare import CloudflareClient
    reconciler = make_reconciler(config=config, client_factory=CloudflareClient)

    outcome = reconciler.run_cycle()

    assert outcome is CycleOutcome.UPDATED
    assert len(responses.calls) == 2
    notifier.send.assert_called_once()


# ============================
# TEST GROUP: Background Loop
# ============================
# Class: ReconciliationLoop
# -------------------------
def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_loop_survives_cycle_exceptions():
    calls = []

    def run_cycle():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("unexpected")
        return CycleOutcome.IN_SYNC

    reconciler = Mock(run_cycle=run_cycle)
    loop = ReconciliationLoop(reconciler, SchedulingPolicy(interval=0.01, enforce=False))

    loop.start()
    try:
        assert _wait_for(lambda: loop.cycles >= 3)
    finally:
        loop.stop(timeout=2)

    assert not loop.running
    assert loop.last_outcome is CycleOutcome.IN_SYNC


def test_stop_cancels_sleep_promptly():
    reconciler = Mock(run_cycle=Mock(return_value=CycleOutcome.IN_SYNC))
    loop = ReconciliationLoop(reconciler, SchedulingPolicy(interval=3600, enforce=False))

    loop.start()
    assert _wait_for(lambda: loop.cycles >= 1)

    start = time.monotonic()
    loop.stop(timeout=2)

    assert time.monotonic() - start < 2
    assert not loop.running
    assert reconciler.run_cycle.call_count == 1
