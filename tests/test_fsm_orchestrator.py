from lifeguardbridge.core.fsm_orchestrator import (
    decide_after_field_poll,
    decide_after_login,
    decide_fill_path,
    decide_initial_state,
    poll_until,
)


def test_decide_initial_state():
    assert decide_initial_state(login_form_showing=True) == "awaiting_login"
    assert decide_initial_state(login_form_showing=False) == "awaiting_fields"


def test_decide_after_login():
    assert (
        decide_after_login(login_form_showing=False, timed_out=False)
        == "awaiting_fields"
    )
    assert decide_after_login(login_form_showing=True, timed_out=True) == "skipped"
    assert (
        decide_after_login(login_form_showing=True, timed_out=False)
        == "awaiting_login"
    )


def test_decide_after_field_poll():
    assert (
        decide_after_field_poll(host_input_present=True, timed_out=False) == "filling"
    )
    # 出现优先于超时
    assert decide_after_field_poll(host_input_present=True, timed_out=True) == "filling"
    assert decide_after_field_poll(host_input_present=False, timed_out=True) == "skipped"
    assert (
        decide_after_field_poll(host_input_present=False, timed_out=False)
        == "awaiting_fields"
    )


def test_decide_fill_path_priority():
    assert decide_fill_path(form_complete=True, record_present=True) == "fill"
    assert decide_fill_path(form_complete=True, record_present=False) == "skip_no_record"
    assert (
        decide_fill_path(form_complete=False, record_present=True)
        == "skip_form_incomplete"
    )


def test_poll_until_returns_true_without_waiting_when_ready():
    waits: list[int] = []
    assert poll_until(lambda: True, timeout_ms=5000, interval_ms=100, wait=waits.append)
    assert waits == []


def test_poll_until_succeeds_after_some_intervals():
    waits: list[int] = []
    checks = iter([False, False, True])
    assert poll_until(
        lambda: next(checks), timeout_ms=5000, interval_ms=100, wait=waits.append
    )
    assert waits == [100, 100]


def test_poll_until_times_out():
    waits: list[int] = []
    assert (
        poll_until(lambda: False, timeout_ms=5000, interval_ms=100, wait=waits.append)
        is False
    )
    assert len(waits) == 50
    assert sum(waits) == 5000
