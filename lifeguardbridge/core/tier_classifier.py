"""
环境层级分类：把工单里的两个 URL 归到 test / staging / production。

规则是主机名子串启发式。注意 site URL 为 staging 时，
test 类的 stage URL 会被直接丢弃；下游按钮依赖这个行为，改动前先确认。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import urlsplit

Tier = Literal["test", "staging", "production"]
TierAction = Literal["staging", "prod"]

TEST_MARKERS = ("-test", "-dev")
STAGING_MARKERS = ("-staging",)


@dataclass(frozen=True)
class TierAssignment:
    """层级 → URL 的解析结果，每个字段都可能为空。"""

    test: Optional[str] = None
    staging: Optional[str] = None
    production: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "test": self.test,
            "staging": self.staging,
            "production": self.production,
        }


def is_test_like(url: Optional[str]) -> bool:
    return bool(url) and any(marker in url for marker in TEST_MARKERS)


def is_staging_like(url: Optional[str]) -> bool:
    return bool(url) and any(marker in url for marker in STAGING_MARKERS)


def url_tier(url: Optional[str]) -> Optional[Tier]:
    """单个 URL 的层级；空 URL 返回 None。"""
    if not url:
        return None
    if is_test_like(url):
        return "test"
    if is_staging_like(url):
        return "staging"
    return "production"


def classify(site_url: Optional[str], stage_url: Optional[str]) -> TierAssignment:
    site_test = is_test_like(site_url)
    site_staging = is_staging_like(site_url)
    stage_test = is_test_like(stage_url)
    stage_staging = is_staging_like(stage_url)
    stage_production = bool(stage_url) and not stage_test and not stage_staging

    if site_test:
        return TierAssignment(
            test=site_url,
            production=stage_url if stage_production else None,
        )
    if site_staging:
        return TierAssignment(
            staging=site_url,
            production=stage_url if stage_production else None,
        )
    # site 为生产或缺失：stage 只会落到 test/staging，不会成为 production
    if stage_test:
        return TierAssignment(test=stage_url, production=site_url or None)
    if stage_staging:
        return TierAssignment(staging=stage_url, production=site_url or None)
    return TierAssignment(production=site_url or None)


def select_target_url(assignment: TierAssignment, action: TierAction) -> Optional[str]:
    """
    按按钮动作选择目标 URL。

    - "staging": test 优先，缺失时回退 staging
    - "prod": production
    """
    if action == "staging":
        return assignment.test or assignment.staging
    if action == "prod":
        return assignment.production
    raise ValueError(f"unknown tier action: {action!r}")


def hostname_from_url(url: Optional[str]) -> Optional[str]:
    """解析主机名；相对地址或无法解析的字符串视为缺失。"""
    if not url:
        return None
    try:
        parsed = urlsplit(url.strip())
        hostname = parsed.hostname
    except ValueError:
        return None
    if not parsed.scheme or not hostname:
        return None
    return hostname
