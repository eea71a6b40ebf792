"""
单线程浏览器 runner。

职责：
- 启动持久化浏览器，打开 Jira
- 监听所有页面：Jira 工单页安装浮动入口，Lifeguard 页面执行自动填表
- 串行执行排队的跳转请求（浮动按钮 / HTTP API）

Playwright 同步 API 只能在创建它的线程中使用，页面事件回调只负责入队，
真正的页面操作全部在 _run_loop 所在线程中完成。
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from queue import Empty, Queue
from threading import Event, Thread
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError, Page
from sqlalchemy.exc import SQLAlchemyError

from ..config import get_section
from .browser_manager import BrowserManager, BrowserSession
from .debug_probe import LogFn, console_log
from .field_extractor import ExtractorConfig, force_load_lazy_content
from .heuristics import is_ticket_page, page_host_matches
from .launcher import NOT_FOUND_MESSAGES, open_lifeguard_for_tier
from .relay import RelayConfig, create_relay
from .target_filler import FillerConfig, run_target_filler
from .trigger_panel import (
    install_trigger_panel,
    is_trigger_panel_installed,
    register_trigger_binding,
    remove_trigger_panel,
)

DEFAULT_SOURCE_HOST = "silkroadtech.atlassian.net"
DEFAULT_DESTINATION_HOST = "lifeguard.silkroad.com"


@dataclass
class RunnerConfig:
    """
    runner 配置（runner 段 + source/destination 的站点信息）。
    """

    source_host: str = DEFAULT_SOURCE_HOST
    start_url: Optional[str] = None
    destination_host: str = DEFAULT_DESTINATION_HOST
    poll_interval_ms: int = 250
    first_panel_delay_ms: int = 2000
    route_change_panel_delay_ms: int = 1000

    @classmethod
    def from_settings(cls) -> "RunnerConfig":
        source = get_section("source")
        destination = get_section("destination")
        runner_cfg = get_section("runner")
        defaults = cls()
        return cls(
            source_host=str(source.get("host") or defaults.source_host),
            start_url=source.get("start_url") or None,
            destination_host=str(destination.get("host") or defaults.destination_host),
            poll_interval_ms=int(runner_cfg.get("poll_interval_ms", defaults.poll_interval_ms)),
            first_panel_delay_ms=int(
                runner_cfg.get("first_panel_delay_ms", defaults.first_panel_delay_ms)
            ),
            route_change_panel_delay_ms=int(
                runner_cfg.get(
                    "route_change_panel_delay_ms", defaults.route_change_panel_delay_ms
                )
            ),
        )


class BridgeRunner:
    """
    浏览器 runner：一个后台线程 + 命令队列。
    """

    def __init__(
        self, config: Optional[RunnerConfig] = None, log_fn: LogFn = console_log
    ) -> None:
        self.config = config
        self._log = log_fn
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._running = False
        self._commands: Queue = Queue()
        self._session: Optional[BrowserSession] = None
        self._watched_pages: set[int] = set()
        self._last_urls: dict[int, str] = {}
        self.history: deque[dict[str, Any]] = deque(maxlen=20)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        if self.config is None:
            self.config = RunnerConfig.from_settings()
        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self._running = True

    def stop(self) -> None:
        self._stop_event.set()
        self._running = False

    def request_handoff(self, action: str, page: Optional[Page] = None) -> None:
        if action not in NOT_FOUND_MESSAGES:
            raise ValueError(f"unknown tier action: {action!r}")
        self._commands.put(("handoff", action, page))

    def status(self) -> dict:
        return {
            "running": self._running,
            "pending_commands": self._commands.qsize(),
            "history": list(self.history),
        }

    def _run_loop(self) -> None:
        cfg = self.config or RunnerConfig()
        try:
            session = BrowserManager(log_fn=self._log).launch()
        except PlaywrightError as e:
            self._log(f"❌ 浏览器启动失败: {e}", "error")
            self._running = False
            return

        self._session = session
        try:
            self._setup_session(session, cfg)
            while not self._stop_event.is_set():
                self._drain_commands()
                session.page.wait_for_timeout(cfg.poll_interval_ms)
        except PlaywrightError as e:
            self._log(f"❌ runner 异常退出: {e}", "error")
        finally:
            try:
                session.close()
            except PlaywrightError:
                pass
            self._session = None
            self._watched_pages.clear()
            self._last_urls.clear()
            self._running = False

    def _setup_session(self, session: BrowserSession, cfg: RunnerConfig) -> None:
        register_trigger_binding(
            session.context,
            lambda page, action: self._commands.put(("handoff", action, page)),
        )
        session.context.on("page", self._watch_page)
        for page in session.context.pages:
            self._watch_page(page)
        if cfg.start_url:
            session.page.goto(cfg.start_url, wait_until="domcontentloaded")

    def _watch_page(self, page: Page) -> None:
        if id(page) in self._watched_pages:
            return
        self._watched_pages.add(id(page))
        page.on(
            "framenavigated",
            lambda frame: self._commands.put(("navigated", None, frame.page))
            if frame == frame.page.main_frame
            else None,
        )
        page.on("domcontentloaded", lambda p: self._commands.put(("page_loaded", None, p)))
        page.on("close", lambda p: self._forget_page(p))

    def _forget_page(self, page: Page) -> None:
        self._watched_pages.discard(id(page))
        self._last_urls.pop(id(page), None)

    def _drain_commands(self) -> None:
        while True:
            try:
                kind, action, page = self._commands.get_nowait()
            except Empty:
                return
            self._process_command(kind, action, page)

    def _process_command(self, kind: str, action: Optional[str], page: Optional[Page]) -> None:
        """
        执行一条命令；单条命令的页面异常不影响 runner 主循环。
        """
        cfg = self.config or RunnerConfig()
        try:
            if kind == "handoff":
                if action not in NOT_FOUND_MESSAGES:
                    self._log(f"⚠ 未知的跳转动作: {action}", "warn")
                    return
                self._handle_handoff(action, page, cfg)
            elif kind == "navigated" and page is not None:
                self._refresh_panel(page, cfg)
            elif kind == "page_loaded" and page is not None:
                if page_host_matches(page.url, cfg.destination_host):
                    self._fill_destination(page)
        except PlaywrightError as e:
            self._log(f"⚠ 命令执行失败 ({kind}): {e}", "warn")
        except SQLAlchemyError as e:
            # 中继存储暂不可用（如 sqlite 被 API 线程锁住）只影响本条命令
            self._log(f"⚠ 中继存储异常 ({kind}): {e}", "warn")
            self.history.append(
                {"kind": kind, "action": action, "success": False, "error": "relay_store_error"}
            )

    def _handle_handoff(self, action: str, page: Optional[Page], cfg: RunnerConfig) -> None:
        source_page = page or self._current_source_page(cfg)
        if source_page is None:
            self._log("⚠ 没有打开的 Jira 工单页，忽略跳转请求", "warn")
            self.history.append(
                {"kind": "handoff", "action": action, "success": False, "error": "no_ticket_page"}
            )
            return
        relay = create_relay(source_page, RelayConfig.from_settings(), self._log)
        result = open_lifeguard_for_tier(
            source_page,
            action,
            relay,
            open_destination=self._open_destination,
            extractor_config=ExtractorConfig.from_settings(),
            log_fn=self._log,
        )
        self.history.append({"kind": "handoff", **result.to_dict()})

    def _open_destination(self, url: str) -> None:
        if self._session is None:
            return
        page = self._session.context.new_page()
        self._watch_page(page)
        page.goto(url, wait_until="domcontentloaded")

    def _fill_destination(self, page: Page) -> None:
        relay = create_relay(page, RelayConfig.from_settings(), self._log)
        outcome = run_target_filler(page, relay, FillerConfig.from_settings(), self._log)
        self.history.append(
            {
                "kind": "fill",
                "state": outcome.state,
                "reason": outcome.reason,
                "record": outcome.record.to_dict() if outcome.record else None,
            }
        )

    def _refresh_panel(self, page: Page, cfg: RunnerConfig) -> None:
        url = page.url
        key = id(page)
        first_visit = key not in self._last_urls
        same_url = not first_visit and self._last_urls[key] == url
        self._last_urls[key] = url
        if not page_host_matches(url, cfg.source_host):
            return
        if same_url:
            # 同一地址：入口还在说明是同文档内的导航；刷新后文档是新的，按首次加载重新安装
            if not is_ticket_page(url) or is_trigger_panel_installed(page):
                return
            first_visit = True

        remove_trigger_panel(page)
        if not is_ticket_page(url):
            return
        delay = cfg.first_panel_delay_ms if first_visit else cfg.route_change_panel_delay_ms
        page.wait_for_timeout(delay)
        # 首次滚动触发懒加载，点击时字段更可能已渲染
        force_load_lazy_content(page, ExtractorConfig.from_settings(), self._log)
        if install_trigger_panel(page):
            self._log("✓ 已安装 Lifeguard 浮动入口")

    def _current_source_page(self, cfg: RunnerConfig) -> Optional[Page]:
        if self._session is None:
            return None
        for page in reversed(self._session.context.pages):
            if page_host_matches(page.url, cfg.source_host) and is_ticket_page(page.url):
                return page
        return None


# 全局单例 runner
runner = BridgeRunner()
