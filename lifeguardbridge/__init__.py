"""
Lifeguard Bridge - Jira → Lifeguard 快速跳转

从 Jira 工单读取环境 URL，按层级（test/staging/prod）分类后，
把目标主机名与工单号交给 Lifeguard 并自动填表。
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv

# 包导入时加载一次项目 .env（LIFEGUARD_RELAY_DB_URL / LIFEGUARD_BRIDGE_CONFIG 等）。
load_dotenv(find_dotenv(usecwd=True), override=False)
