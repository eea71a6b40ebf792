"""
浏览器管理模块：统一管理 Playwright 持久化浏览器启动、profile 与事件日志。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import BrowserContext, Error as PlaywrightError, Page, sync_playwright

from ..config import get_section
from .debug_probe import LogFn


@dataclass
class BrowserSession:
    playwright: Any
    context: BrowserContext
    page: Page

    def close(self) -> None:
        try:
            self.context.close()
        finally:
            try:
                self.playwright.stop()
            except PlaywrightError:
                pass


class BrowserManager:
    """
    管理浏览器生命周期与配置。Jira 与 Lifeguard 页面共用同一个 context（同一登录态）。
    """

    def __init__(self, log_fn: Optional[LogFn] = None) -> None:
        self._log = log_fn or (lambda msg, level="info": None)
        self._settings = get_section("browser")

    def launch(self) -> BrowserSession:
        """启动持久化浏览器并返回会话。"""
        browser_cfg = self._settings

        headless = bool(browser_cfg.get("headless", False))
        slow_mo = int(browser_cfg.get("slow_mo", 0))
        raw_profile_dir = (
            browser_cfg.get("user_data_dir") or "~/.cache/lifeguardbridge/chrome-profile"
        )
        user_data_dir = str(Path(raw_profile_dir).expanduser())
        executable_path = browser_cfg.get("executable_path")

        launch_args = {
            "headless": headless,
            "slow_mo": slow_mo if slow_mo > 0 else None,
            "user_data_dir": user_data_dir,
        }
        if executable_path:
            launch_args["executable_path"] = executable_path

        # 清理 None 参数
        launch_args = {k: v for k, v in launch_args.items() if v is not None}

        playwright = sync_playwright().start()
        context = playwright.chromium.launch_persistent_context(**launch_args)
        page = context.pages[0] if context.pages else context.new_page()

        self.attach_page_listeners(page)
        self._attach_context_listeners(context)

        return BrowserSession(playwright=playwright, context=context, page=page)

    def attach_page_listeners(self, page: Page) -> None:
        """采集页面基础错误信息，写入日志便于排查。"""
        page.on(
            "console",
            lambda msg: self._log(f"[console:{msg.type}] {msg.text}", "warn")
            if msg.type in ("error", "warning")
            else None,
        )
        page.on(
            "pageerror",
            lambda exc: self._log(f"[pageerror] {exc}", "error"),
        )

    def _attach_context_listeners(self, context: BrowserContext) -> None:
        context.on(
            "requestfailed",
            lambda req: self._log(f"[requestfailed] {req.method} {req.url}", "warn"),
        )
