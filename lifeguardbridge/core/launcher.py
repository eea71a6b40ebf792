"""
Jira 侧跳转执行模块。

流程：
1. 从页面地址取工单号
2. 点击时重新提取 URL（带重试）并分类（不使用页面加载时的缓存）
3. 选出目标层级 URL，解析主机名
4. 写入中继，打开 Lifeguard
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from playwright.sync_api import Page

from ..config import get_section
from .debug_probe import LogFn, append_debug_log, console_log
from .field_extractor import ExtractorConfig, get_urls_with_retry
from .heuristics import ticket_number_from_url
from .notifier import show_error_notification, show_notification
from .relay import HandoffRelay
from .tier_classifier import TierAction, classify, hostname_from_url, select_target_url

DEFAULT_DESTINATION_URL = "https://lifeguard.silkroad.com/"

NOT_FOUND_MESSAGES: dict[str, str] = {
    "staging": "❌ Staging/Test URL not found in this Jira ticket",
    "prod": "❌ Production URL not found in this Jira ticket",
}
MALFORMED_URL_MESSAGE = "Unable to find the URL for this environment"
NOT_A_TICKET_MESSAGE = "❌ Not a Jira ticket page"
OPENING_MESSAGE = "Opening Lifeguard..."


@dataclass
class LaunchResult:
    success: bool
    action: str
    ticket_id: str = ""
    target_url: Optional[str] = None
    hostname: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "action": self.action,
            "ticket_id": self.ticket_id,
            "target_url": self.target_url,
            "hostname": self.hostname,
            "error": self.error,
        }


def destination_url() -> str:
    return str(get_section("destination").get("url") or DEFAULT_DESTINATION_URL)


def open_lifeguard_for_tier(
    page: Page,
    action: TierAction,
    relay: HandoffRelay,
    *,
    open_destination: Callable[[str], None],
    extractor_config: Optional[ExtractorConfig] = None,
    target_url: Optional[str] = None,
    log_fn: LogFn = console_log,
) -> LaunchResult:
    """
    单次「打开 Staging/Test」或「打开 Prod」动作。

    找不到目标 URL 时只提示错误，不写中继也不打开新页面。
    """
    if action not in NOT_FOUND_MESSAGES:
        raise ValueError(f"unknown tier action: {action!r}")

    ticket_id = ticket_number_from_url(page.url)
    if not ticket_id:
        show_error_notification(page, NOT_A_TICKET_MESSAGE)
        return LaunchResult(success=False, action=action, error="not_a_ticket_page")

    extraction = get_urls_with_retry(page, config=extractor_config, log_fn=log_fn)
    assignment = classify(extraction.urls.site_url, extraction.urls.stage_url)
    chosen = select_target_url(assignment, action)
    log_fn(f"Click - {action} URL: {chosen}")
    append_debug_log(
        location="launcher.py:classified",
        message="tier urls resolved",
        data={
            "ticket_id": ticket_id,
            "action": action,
            "attempts": extraction.attempts,
            "assignment": assignment.to_dict(),
        },
    )

    if not chosen:
        show_error_notification(page, NOT_FOUND_MESSAGES[action])
        return LaunchResult(
            success=False, action=action, ticket_id=ticket_id, error="url_not_found"
        )

    hostname = hostname_from_url(chosen)
    if not hostname:
        show_error_notification(page, MALFORMED_URL_MESSAGE)
        return LaunchResult(
            success=False,
            action=action,
            ticket_id=ticket_id,
            target_url=chosen,
            error="malformed_url",
        )

    relay.write(hostname, ticket_id)
    open_destination(target_url or destination_url())
    show_notification(page, OPENING_MESSAGE, "info")
    log_fn(f"✓ 已写入中继并打开 Lifeguard: host={hostname}, ticket={ticket_id}")
    return LaunchResult(
        success=True,
        action=action,
        ticket_id=ticket_id,
        target_url=chosen,
        hostname=hostname,
    )
