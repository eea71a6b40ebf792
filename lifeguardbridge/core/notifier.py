"""
页面内 toast 提示：固定在右上角，几秒后自动移除。
"""

from __future__ import annotations

from typing import Literal

from playwright.sync_api import Error as PlaywrightError, Page

NotificationKind = Literal["info", "success", "error"]

# kind -> (背景色, 显示时长 ms)
NOTIFICATION_STYLES: dict[str, tuple[str, int]] = {
    "info": ("#0052CC", 3000),
    "success": ("#00875A", 3000),
    "error": ("#DE350B", 4000),
}

SHOW_NOTIFICATION_JS = """
({ message, color, durationMs }) => {
  const notification = document.createElement("div");
  notification.textContent = message;
  notification.setAttribute("data-lifeguard-toast", "true");
  notification.style.cssText = `
    position: fixed;
    top: 20px;
    right: 20px;
    background-color: ${color};
    color: white;
    padding: 12px 20px;
    border-radius: 4px;
    box-shadow: 0 2px 8px rgba(0,0,0,0.2);
    z-index: 10000;
    font-size: 14px;
    max-width: 300px;
  `;
  document.body.appendChild(notification);
  setTimeout(() => notification.remove(), durationMs);
}
"""


def show_notification(page: Page, message: str, kind: NotificationKind = "info") -> bool:
    color, duration_ms = NOTIFICATION_STYLES.get(kind, NOTIFICATION_STYLES["info"])
    try:
        page.evaluate(
            SHOW_NOTIFICATION_JS,
            {"message": message, "color": color, "durationMs": duration_ms},
        )
        return True
    except PlaywrightError:
        return False


def show_error_notification(page: Page, message: str) -> bool:
    return show_notification(page, message, "error")
