"""
Jira 工单页右下角的浮动入口：主按钮展开两个选项（Staging/Test、Prod）。

按钮点击通过 context 级 binding 回调到 Python，回调只负责把动作交给 runner 排队。
"""

from __future__ import annotations

from typing import Callable

from playwright.sync_api import BrowserContext, Error as PlaywrightError, Page

PANEL_ID = "lifeguard-floating-container"
BINDING_NAME = "lifeguardTrigger"

INSTALL_PANEL_JS = """
({ panelId, bindingName }) => {
  if (!document.body || document.getElementById(panelId)) return false;

  const container = document.createElement("div");
  container.id = panelId;
  container.style.cssText = "position: fixed; bottom: 100px; right: 20px; z-index: 9999;";

  const options = document.createElement("div");
  options.id = "lifeguard-options";
  options.style.cssText =
    "position: absolute; bottom: 70px; right: 0; display: none; flex-direction: column; gap: 8px;";

  const makeOption = (label, action, color, hoverColor) => {
    const btn = document.createElement("div");
    btn.textContent = label;
    btn.setAttribute("data-lifeguard-action", action);
    btn.style.cssText = `
      background: ${color}; color: white; padding: 10px 15px; border-radius: 20px;
      cursor: pointer; box-shadow: 0 2px 5px rgba(0,0,0,0.3); white-space: nowrap;
      font-size: 14px; font-weight: 500; transition: background-color 0.2s;
    `;
    btn.onmouseover = () => (btn.style.backgroundColor = hoverColor);
    btn.onmouseout = () => (btn.style.backgroundColor = color);
    btn.onclick = () => {
      options.style.display = "none";
      window[bindingName](action);
    };
    return btn;
  };

  options.appendChild(makeOption("Open Staging/Test", "staging", "#0052CC", "#0065FF"));
  options.appendChild(makeOption("Open Prod", "prod", "#00875A", "#00A86B"));

  const main = document.createElement("div");
  main.id = "lifeguard-main-btn";
  main.textContent = "LG";
  main.style.cssText = `
    width: 60px; height: 60px; background: #0052CC; border-radius: 50%;
    display: flex; align-items: center; justify-content: center; cursor: pointer;
    color: white; font-weight: 700; box-shadow: 0 2px 8px rgba(0,0,0,0.3);
    transition: background-color 0.2s;
  `;
  main.onmouseover = () => (main.style.backgroundColor = "#0065FF");
  main.onmouseout = () => (main.style.backgroundColor = "#0052CC");
  main.onclick = () => {
    options.style.display = options.style.display === "none" ? "flex" : "none";
  };

  container.appendChild(options);
  container.appendChild(main);
  document.body.appendChild(container);
  return true;
}
"""

PANEL_PRESENT_JS = """
(panelId) => Boolean(document.getElementById(panelId))
"""

REMOVE_PANEL_JS = """
(panelId) => {
  const container = document.getElementById(panelId);
  if (!container) return false;
  container.remove();
  return true;
}
"""


def register_trigger_binding(
    context: BrowserContext, on_action: Callable[[Page, str], None]
) -> None:
    """整个 context 只注册一次；回调参数为 (触发页面, 动作名)。"""
    context.expose_binding(
        BINDING_NAME,
        lambda source, action: on_action(source["page"], str(action)),
    )


def install_trigger_panel(page: Page) -> bool:
    """幂等安装浮动入口；已存在或页面不可用时返回 False。"""
    try:
        return bool(
            page.evaluate(
                INSTALL_PANEL_JS, {"panelId": PANEL_ID, "bindingName": BINDING_NAME}
            )
        )
    except PlaywrightError:
        return False


def remove_trigger_panel(page: Page) -> bool:
    try:
        return bool(page.evaluate(REMOVE_PANEL_JS, PANEL_ID))
    except PlaywrightError:
        return False


def is_trigger_panel_installed(page: Page) -> bool:
    """当前文档里是否还有浮动入口；刷新或重新加载后文档是新的，入口随之消失。"""
    try:
        return bool(page.evaluate(PANEL_PRESENT_JS, PANEL_ID))
    except PlaywrightError:
        return False
