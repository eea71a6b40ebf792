from contextlib import asynccontextmanager
import time

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .db.database import init_db
from .core.launcher import NOT_FOUND_MESSAGES, destination_url
from .core.relay import HandoffRelay, RelayConfig, SqlKeyValueStore
from .core.scheduler import runner
from .core.tier_classifier import classify, hostname_from_url, url_tier


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 初始化共享中继表
    init_db()
    yield
    runner.stop()


app = FastAPI(title="Lifeguard Bridge - Jira to Lifeguard", lifespan=lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_relay() -> HandoffRelay:
    """API 侧始终直接读写共享数据库存储。"""
    cfg = RelayConfig.from_settings()
    return HandoffRelay(SqlKeyValueStore(), validity_ms=cfg.validity_ms)


@app.post("/api/control/start")
def start_runner():
    """
    启动浏览器 runner（打开 Jira，开始监听页面）
    """
    runner.start()
    return {"ok": True, "message": "runner started"}


@app.post("/api/control/pause")
def pause_runner():
    """
    停止浏览器 runner
    """
    runner.stop()
    return {"ok": True, "message": "paused"}


@app.get("/api/control/status")
def runner_status():
    """runner 运行状态与最近的跳转/填表结果。"""
    return {"ok": True, **runner.status()}


@app.post("/api/handoff/{action}")
def request_handoff(action: str):
    """
    在当前 Jira 工单页上触发一次跳转（action: staging | prod）。
    """
    if action not in NOT_FOUND_MESSAGES:
        return {"ok": False, "error": f"unknown action: {action}"}
    if not runner.is_running:
        return {"ok": False, "error": "runner is not running"}
    runner.request_handoff(action)
    return {"ok": True, "message": f"handoff {action} queued"}


@app.post("/api/classify")
def classify_urls(payload: dict):
    """对一组 site/stage URL 做层级分类（不访问页面）。"""
    site_url = (payload.get("site_url") or "").strip() or None
    stage_url = (payload.get("stage_url") or "").strip() or None
    assignment = classify(site_url, stage_url)
    return {
        "ok": True,
        "assignment": assignment.to_dict(),
        "tiers": {"site_url": url_tier(site_url), "stage_url": url_tier(stage_url)},
    }


@app.get("/api/relay")
def get_relay_record():
    """查看当前有效的中继记录（只读，不会清空）。"""
    record = _get_relay().read_if_valid()
    return {"ok": True, "record": record.to_dict() if record else None}


@app.post("/api/relay")
def write_relay_record(payload: dict):
    """
    手动写入中继（hostname 或 url 二选一 + ticket），用于不经过 Jira 页面的跳转。
    """
    hostname = (payload.get("hostname") or "").strip()
    if not hostname and payload.get("url"):
        hostname = hostname_from_url(str(payload.get("url"))) or ""
    ticket = (payload.get("ticket") or "").strip()
    if not hostname:
        return {"ok": False, "error": "hostname is required"}
    if not ticket:
        return {"ok": False, "error": "ticket is required"}
    record = _get_relay().write(hostname, ticket)
    return {"ok": True, "record": record.to_dict()}


@app.delete("/api/relay")
def clear_relay_record():
    """清空中继记录。"""
    _get_relay().clear()
    return {"ok": True, "message": "relay cleared"}


@app.get("/api/destination/health")
def destination_health_check():
    """对 Lifeguard 首页做一次轻量可达性检查。"""
    url = destination_url()
    start = time.time()
    try:
        resp = httpx.get(url, timeout=8.0, follow_redirects=True)
    except httpx.HTTPError as e:
        return {"ok": False, "url": url, "error": str(e)}
    latency_ms = int((time.time() - start) * 1000)
    return {
        "ok": resp.status_code < 500,
        "url": url,
        "status_code": resp.status_code,
        "latency_ms": latency_ms,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("lifeguardbridge.app:app", host="127.0.0.1", port=8000, reload=True)
