"""
Lifeguard 自动填表状态机决策模块

职责：
- 统一 awaiting_login → awaiting_fields → filling → done/skipped 的分支决策
- 保持决策纯函数化，便于测试与回放
- 提供唯一的轮询原语 poll_until
"""

from __future__ import annotations

from typing import Callable, Literal

FillerState = Literal[
    "awaiting_login",
    "awaiting_fields",
    "filling",
    "done",
    "skipped",
]
FillPath = Literal["fill", "skip_form_incomplete", "skip_no_record"]

TERMINAL_STATES: frozenset[str] = frozenset({"done", "skipped"})


def decide_initial_state(*, login_form_showing: bool) -> FillerState:
    if login_form_showing:
        return "awaiting_login"
    return "awaiting_fields"


def decide_after_login(*, login_form_showing: bool, timed_out: bool) -> FillerState:
    if not login_form_showing:
        return "awaiting_fields"
    if timed_out:
        return "skipped"
    return "awaiting_login"


def decide_after_field_poll(*, host_input_present: bool, timed_out: bool) -> FillerState:
    # 出现即进入填写；超时静默结束
    if host_input_present:
        return "filling"
    if timed_out:
        return "skipped"
    return "awaiting_fields"


def decide_fill_path(*, form_complete: bool, record_present: bool) -> FillPath:
    # 表单不完整时不读取中继，避免消费掉一条无法使用的记录
    if not form_complete:
        return "skip_form_incomplete"
    if not record_present:
        return "skip_no_record"
    return "fill"


def poll_until(
    check: Callable[[], bool],
    *,
    timeout_ms: int,
    interval_ms: int,
    wait: Callable[[int], None],
) -> bool:
    """
    按固定间隔检查条件，满足返回 True，超时返回 False。

    已等待时间按间隔累加，不读墙钟，测试中 wait 可为空操作。
    """
    interval_ms = max(1, int(interval_ms))
    waited = 0
    while True:
        if check():
            return True
        if waited >= timeout_ms:
            return False
        wait(interval_ms)
        waited += interval_ms
