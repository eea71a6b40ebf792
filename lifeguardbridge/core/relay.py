"""
交接中继（Handoff Relay）

职责：
- Jira 页写入 hostname / ticket / timestamp 三个键
- Lifeguard 页在有效期内读取，读取成功后由调用方立即 clear()
- 存储后端可替换：共享数据库（特权存储）/ 页面 localStorage / 内存
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..config import get_section
from ..db.database import get_session, init_db
from ..models.relay_value import RelayValue
from .debug_probe import LogFn, console_log

HOSTNAME_KEY = "lifeguard_hostname"
TICKET_KEY = "lifeguard_ticket"
TIMESTAMP_KEY = "lifeguard_timestamp"
RELAY_KEYS = (HOSTNAME_KEY, TICKET_KEY, TIMESTAMP_KEY)

DEFAULT_VALIDITY_MS = 300_000


def now_ms() -> int:
    return int(time.time() * 1000)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


def _loads_or_raw(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class MemoryKeyValueStore:
    """进程内 dict 存储，测试与 dry-run 使用。"""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self.values: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value


# memory 后端在整个进程内共用一份，写入方（Jira 页）与读取方（Lifeguard 页）才能看到同一条记录
_process_memory_store = MemoryKeyValueStore()


class SqlKeyValueStore:
    """
    特权共享存储：同一进程内所有页面都能读写，不受页面 origin 限制。
    """

    def get(self, key: str) -> Any:
        with get_session() as session:
            row = session.get(RelayValue, key)
            raw = row.value if row is not None else None
        return _loads_or_raw(raw)

    def set(self, key: str, value: Any) -> None:
        encoded = None if value is None else json.dumps(value, ensure_ascii=False)
        with get_session() as session:
            row = session.get(RelayValue, key)
            if row is None:
                session.add(RelayValue(key=key, value=encoded))
            else:
                row.value = encoded
                session.add(row)


class PageLocalStorageStore:
    """页面本地存储回退方案：localStorage + JSON 文本。"""

    def __init__(self, page) -> None:
        self.page = page

    def get(self, key: str) -> Any:
        raw = self.page.evaluate("(key) => window.localStorage.getItem(key)", key)
        return _loads_or_raw(raw)

    def set(self, key: str, value: Any) -> None:
        self.page.evaluate(
            "([key, value]) => window.localStorage.setItem(key, value)",
            [key, json.dumps(value, ensure_ascii=False)],
        )


@dataclass(frozen=True)
class RelayRecord:
    hostname: str
    ticket_id: str
    written_at_ms: int

    def to_dict(self) -> dict:
        return {
            "hostname": self.hostname,
            "ticket_id": self.ticket_id,
            "written_at_ms": self.written_at_ms,
        }


@dataclass
class RelayConfig:
    backend: str = "auto"
    validity_ms: int = DEFAULT_VALIDITY_MS

    @classmethod
    def from_settings(cls, section: Optional[dict] = None) -> "RelayConfig":
        cfg = section if section is not None else get_section("relay")
        return cls(
            backend=str(cfg.get("backend") or "auto").lower(),
            validity_ms=int(cfg.get("validity_ms", DEFAULT_VALIDITY_MS)),
        )


class HandoffRelay:
    """单写单读的过期键值中继。"""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        validity_ms: int = DEFAULT_VALIDITY_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.validity_ms = validity_ms
        self.clock = clock

    def write(self, hostname: str, ticket_id: str) -> RelayRecord:
        record = RelayRecord(
            hostname=hostname, ticket_id=ticket_id, written_at_ms=self.clock()
        )
        self.store.set(HOSTNAME_KEY, record.hostname)
        self.store.set(TICKET_KEY, record.ticket_id)
        self.store.set(TIMESTAMP_KEY, record.written_at_ms)
        return record

    def read_if_valid(self) -> Optional[RelayRecord]:
        hostname = self.store.get(HOSTNAME_KEY)
        ticket = self.store.get(TICKET_KEY)
        timestamp = self.store.get(TIMESTAMP_KEY)
        if not hostname or not ticket or not timestamp:
            return None
        try:
            written_at = int(timestamp)
        except (TypeError, ValueError):
            return None
        if self.clock() - written_at > self.validity_ms:
            return None
        return RelayRecord(
            hostname=str(hostname), ticket_id=str(ticket), written_at_ms=written_at
        )

    def clear(self) -> None:
        for key in RELAY_KEYS:
            self.store.set(key, None)


def create_relay(
    page=None,
    config: Optional[RelayConfig] = None,
    log_fn: LogFn = console_log,
) -> HandoffRelay:
    """
    按配置选择存储后端。

    backend:
    - "sql": 共享数据库
    - "page": 当前页面 localStorage（需要 page）
    - "memory": 进程内共享的内存存储
    - "auto": 数据库可用则用数据库，否则回退到页面存储
    """
    cfg = config or RelayConfig.from_settings()
    backend = cfg.backend

    if backend == "memory":
        store: KeyValueStore = _process_memory_store
    elif backend == "page":
        if page is None:
            raise ValueError("page-local relay backend requires a page")
        store = PageLocalStorageStore(page)
    elif backend == "sql":
        init_db()
        store = SqlKeyValueStore()
    elif backend == "auto":
        try:
            init_db()
            store = SqlKeyValueStore()
        except SQLAlchemyError as e:
            if page is None:
                raise
            log_fn(f"⚠ 共享存储不可用，回退到页面 localStorage: {e}", "warn")
            store = PageLocalStorageStore(page)
    else:
        raise ValueError(f"unknown relay backend: {backend!r}")

    return HandoffRelay(store, validity_ms=cfg.validity_ms)
