"""
通用启发式规则：工单页识别、站点识别、Lifeguard 登录表单检测。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

TICKET_PATH_RE = re.compile(r"/browse/([A-Z]+-\d+)")


@dataclass
class LoginFormAssessment:
    """Lifeguard 页面是否仍停留在登录表单的结构化判定结果。"""

    showing: bool
    reason: str
    evidence: dict[str, int]


def is_ticket_page(url: str) -> bool:
    return bool(TICKET_PATH_RE.search(url or ""))


def ticket_number_from_url(url: str) -> str:
    """从 /browse/ABC-123 形式的地址提取工单号，提取不到返回空串。"""
    match = TICKET_PATH_RE.search(url or "")
    return match.group(1) if match else ""


def page_host_matches(url: str, host: str) -> bool:
    try:
        hostname = urlsplit(url or "").hostname or ""
    except ValueError:
        return False
    return bool(host) and hostname.lower() == host.lower()


def assess_login_form(
    *,
    username_input_count: int,
    password_input_count: int,
) -> LoginFormAssessment:
    """用户名与密码输入框同时存在才算登录页。"""
    evidence = {
        "username_input_count": max(username_input_count, 0),
        "password_input_count": max(password_input_count, 0),
    }
    if username_input_count > 0 and password_input_count > 0:
        return LoginFormAssessment(
            showing=True, reason="login_form_detected", evidence=evidence
        )
    if username_input_count > 0 or password_input_count > 0:
        return LoginFormAssessment(
            showing=False, reason="partial_login_inputs", evidence=evidence
        )
    return LoginFormAssessment(
        showing=False, reason="no_login_inputs", evidence=evidence
    )
