"""
Alert store adapters.

The engine only reads from the store: alerts with their anomalies, products
and shipments. Two implementations share the AlertStore protocol: an
in-memory store used by tests and embedding callers, and a SQLite-backed
store for the HTTP service. Writers exist only so callers can load data.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence

from core.models.records import Alert, Product, Shipment
from utils.time_utils import ensure_utc


class AlertStore(Protocol):
    def get_alert(self, alert_id: str) -> Optional[Alert]: ...

    def list_alerts(
        self,
        exclude_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
        include_resolved: bool = True,
    ) -> List[Alert]: ...

    def list_products(
        self, category: Optional[str] = None, ids: Optional[Sequence[str]] = None
    ) -> List[Product]: ...

    def list_shipments(
        self,
        product_id: Optional[str] = None,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Shipment]: ...


class InMemoryAlertStore:
    """Dict-backed store. Alerts are returned newest first."""

    def __init__(
        self,
        alerts: Iterable[Alert] = (),
        products: Iterable[Product] = (),
        shipments: Iterable[Shipment] = (),
    ) -> None:
        self._alerts = {a.id: a for a in alerts}
        self._products = {p.id: p for p in products}
        self._shipments = list(shipments)

    def add_alert(self, alert: Alert) -> None:
        self._alerts[alert.id] = alert

    def add_product(self, product: Product) -> None:
        self._products[product.id] = product

    def add_shipment(self, shipment: Shipment) -> None:
        self._shipments.append(shipment)

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def list_alerts(self, exclude_id=None, since=None, limit=100, include_resolved=True):
        cutoff = ensure_utc(since) if since is not None else None
        rows = [
            a
            for a in self._alerts.values()
            if a.id != exclude_id
            and (cutoff is None or a.created_at >= cutoff)
            and (include_resolved or a.status != "resolved")
        ]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows[: max(0, int(limit))]

    def list_products(self, category=None, ids=None):
        wanted = set(ids) if ids is not None else None
        return [
            p
            for p in self._products.values()
            if (category is None or p.category == category)
            and (wanted is None or p.id in wanted)
        ]

    def list_shipments(self, product_id=None, category=None, start=None, end=None):
        allowed = None
        if category is not None:
            allowed = {p.id for p in self.list_products(category=category)}
        lo = ensure_utc(start) if start is not None else None
        hi = ensure_utc(end) if end is not None else None
        rows = [
            s
            for s in self._shipments
            if (product_id is None or s.product_id == product_id)
            and (allowed is None or s.product_id in allowed)
            and (lo is None or s.shipment_date >= lo)
            and (hi is None or s.shipment_date <= hi)
        ]
        rows.sort(key=lambda s: s.shipment_date)
        return rows


class SqliteAlertStore:
    """SQLite-backed alert store."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        project_root = Path(__file__).resolve().parents[1]
        self._db_path = Path(db_path) if db_path else (project_root / "data" / "alerts.db")
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS alerts (
                    id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'new',
                    anomaly_json TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_alerts_created ON alerts (created_at);
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    hs_code TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL DEFAULT '',
                    description TEXT
                );
                CREATE TABLE IF NOT EXISTS shipments (
                    id TEXT,
                    product_id TEXT NOT NULL,
                    price REAL NOT NULL,
                    quantity REAL NOT NULL DEFAULT 0,
                    shipment_date TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_shipments_date ON shipments (shipment_date);
                """
            )
            conn.commit()

    def add_alert(self, alert: Alert) -> None:
        anomaly = None
        if alert.anomaly is not None:
            # details are dumped by their concrete type so per-type fields survive
            payload = alert.anomaly.model_dump(mode="json", exclude={"details"})
            payload["details"] = alert.anomaly.details.model_dump(mode="json", exclude_none=True)
            anomaly = json.dumps(payload)
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO alerts (id, created_at, status, anomaly_json) VALUES (?, ?, ?, ?)",
                (alert.id, alert.created_at.isoformat(), alert.status, anomaly),
            )
            conn.commit()

    def add_product(self, product: Product) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO products (id, hs_code, category, description) VALUES (?, ?, ?, ?)",
                (product.id, product.hs_code, product.category, product.description),
            )
            conn.commit()

    def add_shipment(self, shipment: Shipment) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO shipments (id, product_id, price, quantity, shipment_date) VALUES (?, ?, ?, ?, ?)",
                (
                    shipment.id,
                    shipment.product_id,
                    float(shipment.price),
                    float(shipment.quantity),
                    shipment.shipment_date.isoformat(),
                ),
            )
            conn.commit()

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> Alert:
        anomaly = json.loads(row["anomaly_json"]) if row["anomaly_json"] else None
        return Alert(
            id=row["id"],
            created_at=row["created_at"],
            status=row["status"],
            anomaly=anomaly,
        )

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, created_at, status, anomaly_json FROM alerts WHERE id = ?",
                (alert_id,),
            ).fetchone()
        return self._row_to_alert(row) if row is not None else None

    def list_alerts(self, exclude_id=None, since=None, limit=100, include_resolved=True):
        clauses, params = [], []
        if exclude_id is not None:
            clauses.append("id != ?")
            params.append(exclude_id)
        if since is not None:
            clauses.append("created_at >= ?")
            params.append(ensure_utc(since).isoformat())
        if not include_resolved:
            clauses.append("status != 'resolved'")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(int(limit))
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, created_at, status, anomaly_json FROM alerts {where} "
                "ORDER BY created_at DESC LIMIT ?",
                params,
            ).fetchall()
        return [self._row_to_alert(row) for row in rows]

    def list_products(self, category=None, ids=None):
        clauses, params = [], []
        if category is not None:
            clauses.append("category = ?")
            params.append(category)
        if ids is not None:
            ids = list(ids)
            if not ids:
                return []
            clauses.append(f"id IN ({','.join('?' for _ in ids)})")
            params.extend(ids)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, hs_code, category, description FROM products {where}", params
            ).fetchall()
        return [Product(**dict(row)) for row in rows]

    def list_shipments(self, product_id=None, category=None, start=None, end=None):
        clauses, params = [], []
        if product_id is not None:
            clauses.append("s.product_id = ?")
            params.append(product_id)
        if category is not None:
            clauses.append("p.category = ?")
            params.append(category)
        if start is not None:
            clauses.append("s.shipment_date >= ?")
            params.append(ensure_utc(start).isoformat())
        if end is not None:
            clauses.append("s.shipment_date <= ?")
            params.append(ensure_utc(end).isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT s.id, s.product_id, s.price, s.quantity, s.shipment_date "
                f"FROM shipments s LEFT JOIN products p ON p.id = s.product_id {where} "
                "ORDER BY s.shipment_date ASC",
                params,
            ).fetchall()
        return [Shipment(**dict(row)) for row in rows]
