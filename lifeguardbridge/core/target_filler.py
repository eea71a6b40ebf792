"""
Lifeguard 自动填表模块。

流程：
1. 登录页：等待登录完成（用户名/密码输入框消失）
2. 轮询 HostName 输入框出现（超时静默退出）
3. 读取中继记录（过期/缺失则跳过）
4. 按顺序填写 HostName → 失焦 → Reason Code → Jira Ticket
5. 清空中继，提示成功

Lifeguard 页面自身的响应式逻辑需要逐个处理字段变更，
所以每一步都是「修改 → 派发事件 → 等待」，顺序不可打乱。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from playwright.sync_api import Error as PlaywrightError, Page

from ..config import get_section
from .debug_probe import LogFn, append_debug_log, console_log
from .fsm_orchestrator import (
    FillerState,
    decide_after_field_poll,
    decide_after_login,
    decide_fill_path,
    decide_initial_state,
    poll_until,
)
from .heuristics import assess_login_form
from .notifier import show_notification
from .relay import HandoffRelay, RelayRecord

SUCCESS_MESSAGE = "✓ Form filled from Jira data"

SET_FIELD_VALUE_JS = """
({ elementId, value, eventName, jqueryTrigger }) => {
  const el = document.getElementById(elementId);
  if (!el) return false;
  el.value = value;
  el.dispatchEvent(new Event(eventName, { bubbles: true }));
  if (jqueryTrigger && window.jQuery) {
    window.jQuery(el).trigger(eventName);
  }
  return true;
}
"""

SETTLE_FIELD_JS = """
(elementId) => {
  const el = document.getElementById(elementId);
  if (el) el.blur();
  document.body.click();
  return Boolean(el);
}
"""


@dataclass
class FillerConfig:
    host_input_id: str = "HostName"
    reason_select_id: str = "reasoncodeid"
    ticket_input_id: str = "JiraTicket"
    username_input_id: str = "UserName"
    password_input_id: str = "Password"
    reason_code: str = "Config"
    login_timeout_ms: int = 600000
    login_poll_interval_ms: int = 250
    post_login_settle_ms: int = 1000
    field_timeout_ms: int = 5000
    field_poll_interval_ms: int = 100
    field_settle_ms: int = 500
    host_settle_ms: int = 300
    blur_settle_ms: int = 200
    reason_settle_ms: int = 100

    @classmethod
    def from_settings(cls, section: Optional[dict] = None) -> "FillerConfig":
        cfg = section if section is not None else get_section("destination")
        defaults = cls()
        values = {}
        for name, default in vars(defaults).items():
            raw = cfg.get(name)
            if raw is None:
                values[name] = default
            elif isinstance(default, int):
                values[name] = int(raw)
            else:
                values[name] = str(raw)
        return cls(**values)


@dataclass(frozen=True)
class FillStep:
    kind: Literal["set_value", "settle_field"]
    element_id: str
    value: Optional[str] = None
    event: Optional[str] = None
    delay_after_ms: int = 0
    jquery_trigger: bool = False


@dataclass
class FillOutcome:
    state: FillerState
    reason: str
    record: Optional[RelayRecord] = None
    transitions: list[str] = field(default_factory=list)


def build_fill_plan(record: RelayRecord, config: Optional[FillerConfig] = None) -> list[FillStep]:
    cfg = config or FillerConfig()
    return [
        FillStep(
            kind="set_value",
            element_id=cfg.host_input_id,
            value=record.hostname,
            event="input",
            delay_after_ms=cfg.host_settle_ms,
            jquery_trigger=True,
        ),
        FillStep(
            kind="settle_field",
            element_id=cfg.host_input_id,
            delay_after_ms=cfg.blur_settle_ms,
        ),
        FillStep(
            kind="set_value",
            element_id=cfg.reason_select_id,
            value=cfg.reason_code,
            event="change",
            delay_after_ms=cfg.reason_settle_ms,
        ),
        FillStep(
            kind="set_value",
            element_id=cfg.ticket_input_id,
            value=record.ticket_id,
            event="input",
        ),
    ]


def element_present(page: Page, element_id: str) -> bool:
    try:
        return page.locator(f"[id='{element_id}']").count() > 0
    except PlaywrightError:
        return False


def login_form_showing(page: Page, config: Optional[FillerConfig] = None) -> bool:
    cfg = config or FillerConfig()
    assessment = assess_login_form(
        username_input_count=int(element_present(page, cfg.username_input_id)),
        password_input_count=int(element_present(page, cfg.password_input_id)),
    )
    return assessment.showing


def execute_fill_step(page: Page, step: FillStep, log_fn: LogFn = console_log) -> None:
    if step.kind == "set_value":
        applied = page.evaluate(
            SET_FIELD_VALUE_JS,
            {
                "elementId": step.element_id,
                "value": step.value or "",
                "eventName": step.event or "input",
                "jqueryTrigger": step.jquery_trigger,
            },
        )
    else:
        applied = page.evaluate(SETTLE_FIELD_JS, step.element_id)
    if not applied:
        log_fn(f"⚠ 字段不存在: #{step.element_id}", "warn")
    if step.delay_after_ms > 0:
        page.wait_for_timeout(step.delay_after_ms)


def run_target_filler(
    page: Page,
    relay: HandoffRelay,
    config: Optional[FillerConfig] = None,
    log_fn: LogFn = console_log,
) -> FillOutcome:
    """在 Lifeguard 页面上执行一次完整的等待 + 填表流程，不抛出页面异常。"""
    cfg = config or FillerConfig()
    transitions: list[str] = []
    try:
        return _run_states(page, relay, cfg, log_fn, transitions)
    except PlaywrightError as e:
        log_fn(f"❌ 填表过程中页面异常: {e}", "error")
        return FillOutcome(state="skipped", reason="page_error", transitions=transitions)


def _run_states(
    page: Page,
    relay: HandoffRelay,
    cfg: FillerConfig,
    log_fn: LogFn,
    transitions: list[str],
) -> FillOutcome:
    state = decide_initial_state(login_form_showing=login_form_showing(page, cfg))
    transitions.append(state)

    if state == "awaiting_login":
        log_fn("ℹ 检测到登录页，等待登录完成")
        logged_in = poll_until(
            lambda: not login_form_showing(page, cfg),
            timeout_ms=cfg.login_timeout_ms,
            interval_ms=cfg.login_poll_interval_ms,
            wait=page.wait_for_timeout,
        )
        state = decide_after_login(
            login_form_showing=not logged_in, timed_out=not logged_in
        )
        transitions.append(state)
        if state == "skipped":
            log_fn("⚠ 等待登录超时，放弃自动填表", "warn")
            return FillOutcome(state=state, reason="login_timeout", transitions=transitions)
        page.wait_for_timeout(cfg.post_login_settle_ms)

    host_present = poll_until(
        lambda: element_present(page, cfg.host_input_id),
        timeout_ms=cfg.field_timeout_ms,
        interval_ms=cfg.field_poll_interval_ms,
        wait=page.wait_for_timeout,
    )
    state = decide_after_field_poll(
        host_input_present=host_present, timed_out=not host_present
    )
    transitions.append(state)
    if state == "skipped":
        return FillOutcome(state=state, reason="fields_timeout", transitions=transitions)
    page.wait_for_timeout(cfg.field_settle_ms)

    form_complete = not login_form_showing(page, cfg) and all(
        element_present(page, element_id)
        for element_id in (cfg.host_input_id, cfg.reason_select_id, cfg.ticket_input_id)
    )
    # 表单不完整时不读取中继
    record = relay.read_if_valid() if form_complete else None
    path = decide_fill_path(form_complete=form_complete, record_present=record is not None)
    if path == "skip_form_incomplete":
        transitions.append("skipped")
        return FillOutcome(state="skipped", reason="form_incomplete", transitions=transitions)
    if path == "skip_no_record":
        transitions.append("skipped")
        return FillOutcome(state="skipped", reason="no_valid_handoff", transitions=transitions)

    append_debug_log(
        location="target_filler.py:filling",
        message="relay record consumed",
        data=record.to_dict(),
    )
    try:
        for step in build_fill_plan(record, cfg):
            execute_fill_step(page, step, log_fn)
    finally:
        relay.clear()

    transitions.append("done")
    show_notification(page, SUCCESS_MESSAGE, "success")
    log_fn(f"✓ 已填写 Lifeguard 表单: host={record.hostname}, ticket={record.ticket_id}")
    return FillOutcome(state="done", reason="filled", record=record, transitions=transitions)
