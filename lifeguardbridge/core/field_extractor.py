"""
Jira 工单字段提取：读取 site / stage 两个 URL 自定义字段。

Jira 的富文本字段是懒加载的（滚动到可见区域才渲染），
因此提取带重试：每轮失败后先滚动触发加载，再重新读取。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from playwright.sync_api import Error as PlaywrightError, Page

from ..config import get_section
from .debug_probe import LogFn, append_debug_log, console_log

SITE_URL_FIELD = "issue.issue-view-layout.issue-view-url-field.customfield_10198"
STAGE_URL_FIELD = "issue.issue-view-layout.issue-view-url-field.customfield_10279"
LINK_SELECTOR = 'a[data-testid="smart-links-container-layered-link"]'
DETAILS_SECTION = (
    "issue-view-layout-group.common.ui.collapsible-group-factory.details-group"
)

EXTRACT_URL_JS = """
({ testId, linkSelector }) => {
  const field = document.querySelector(`[data-testid="${testId}"]`);
  if (!field) return null;
  const link = field.querySelector(linkSelector);
  return link ? link.href : null;
}
"""

SCROLL_FIELD_JS = """
(testIds) => {
  for (const testId of testIds) {
    const field = document.querySelector(`[data-testid="${testId}"]`);
    if (field) {
      field.scrollIntoView({ behavior: "auto", block: "center" });
      return true;
    }
  }
  return false;
}
"""

SCROLL_DETAILS_JS = """
(testId) => {
  const section = document.querySelector(`[data-testid="${testId}"]`);
  if (!section) return false;
  section.scrollIntoView({ behavior: "auto", block: "start" });
  return true;
}
"""

SCROLL_VIEWPORT_JS = """
() => window.scrollBy({ top: window.innerHeight, behavior: "auto" })
"""


@dataclass
class ExtractorConfig:
    site_url_field: str = SITE_URL_FIELD
    stage_url_field: str = STAGE_URL_FIELD
    link_selector: str = LINK_SELECTOR
    details_section: str = DETAILS_SECTION
    max_attempts: int = 3
    scroll_settle_ms: int = 1000
    fallback_scroll_delay_ms: int = 500
    retry_delay_ms: int = 500

    @classmethod
    def from_settings(cls, section: Optional[dict] = None) -> "ExtractorConfig":
        cfg = section if section is not None else get_section("source")
        defaults = cls()
        return cls(
            site_url_field=str(cfg.get("site_url_field") or defaults.site_url_field),
            stage_url_field=str(cfg.get("stage_url_field") or defaults.stage_url_field),
            link_selector=str(cfg.get("link_selector") or defaults.link_selector),
            details_section=str(cfg.get("details_section") or defaults.details_section),
            max_attempts=int(cfg.get("max_attempts", defaults.max_attempts)),
            scroll_settle_ms=int(cfg.get("scroll_settle_ms", defaults.scroll_settle_ms)),
            fallback_scroll_delay_ms=int(
                cfg.get("fallback_scroll_delay_ms", defaults.fallback_scroll_delay_ms)
            ),
            retry_delay_ms=int(cfg.get("retry_delay_ms", defaults.retry_delay_ms)),
        )


@dataclass(frozen=True)
class RawUrlPair:
    site_url: Optional[str] = None
    stage_url: Optional[str] = None

    @property
    def has_any(self) -> bool:
        return bool(self.site_url or self.stage_url)


@dataclass
class ExtractionResult:
    urls: RawUrlPair
    found: bool
    attempts: int


def extract_url(
    page: Page, test_id: str, link_selector: str = LINK_SELECTOR
) -> Optional[str]:
    """读取字段内第一个链接的 href；字段或链接不存在时返回 None。"""
    try:
        href = page.evaluate(
            EXTRACT_URL_JS, {"testId": test_id, "linkSelector": link_selector}
        )
    except PlaywrightError:
        return None
    href = str(href or "").strip()
    return href or None


def extract_urls(page: Page, config: Optional[ExtractorConfig] = None) -> RawUrlPair:
    cfg = config or ExtractorConfig()
    return RawUrlPair(
        site_url=extract_url(page, cfg.site_url_field, cfg.link_selector),
        stage_url=extract_url(page, cfg.stage_url_field, cfg.link_selector),
    )


def force_load_lazy_content(
    page: Page,
    config: Optional[ExtractorConfig] = None,
    log_fn: LogFn = console_log,
) -> str:
    """
    滚动触发懒加载。

    Returns:
        "field": URL 字段已存在，滚动到字段
        "details": 字段未渲染，滚动到 Details 区再下翻一屏
        "none": 两者都不存在，直接返回
    """
    cfg = config or ExtractorConfig()
    try:
        if page.evaluate(SCROLL_FIELD_JS, [cfg.site_url_field, cfg.stage_url_field]):
            page.wait_for_timeout(cfg.scroll_settle_ms)
            log_fn("Lazy content loading complete")
            return "field"

        if page.evaluate(SCROLL_DETAILS_JS, cfg.details_section):
            page.wait_for_timeout(cfg.fallback_scroll_delay_ms)
            page.evaluate(SCROLL_VIEWPORT_JS)
            page.wait_for_timeout(cfg.scroll_settle_ms)
            log_fn("Lazy content loading complete (fallback)")
            return "details"
    except PlaywrightError as e:
        log_fn(f"⚠ 懒加载滚动失败: {e}", "warn")
        return "none"

    log_fn("Details section not found, resolving anyway")
    return "none"


def get_urls_with_retry(
    page: Page,
    max_attempts: Optional[int] = None,
    config: Optional[ExtractorConfig] = None,
    log_fn: LogFn = console_log,
) -> ExtractionResult:
    """
    带重试地读取两个 URL，任一存在即返回。

    用尽次数后返回两个空值（found=False），不抛异常。
    """
    cfg = config or ExtractorConfig()
    attempts_budget = max_attempts if max_attempts is not None else cfg.max_attempts
    attempts_budget = max(1, int(attempts_budget))

    for attempt in range(1, attempts_budget + 1):
        urls = extract_urls(page, cfg)
        if urls.has_any:
            log_fn(f"URLs found on attempt {attempt}")
            append_debug_log(
                location="field_extractor.py:found",
                message="urls extracted",
                data={
                    "attempt": attempt,
                    "site_url": urls.site_url,
                    "stage_url": urls.stage_url,
                },
            )
            return ExtractionResult(urls=urls, found=True, attempts=attempt)

        if attempt < attempts_budget:
            log_fn(
                f"URLs not found, attempt {attempt}/{attempts_budget}, scrolling again..."
            )
            force_load_lazy_content(page, cfg, log_fn)
            try:
                page.wait_for_timeout(cfg.retry_delay_ms)
            except PlaywrightError as e:
                log_fn(f"⚠ 页面已不可用，停止重试: {e}", "warn")
                return ExtractionResult(urls=RawUrlPair(), found=False, attempts=attempt)

    log_fn("URLs not found after all retries", "warn")
    return ExtractionResult(urls=RawUrlPair(), found=False, attempts=attempts_budget)
