"""
测试配置文件
提供测试所需的fixtures和配置
"""

import os

os.environ.setdefault("DATABASE_URL", "duckdb://:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from typing import Iterable, Optional

import pytest
from fastapi.testclient import TestClient

from ..app import create_app
from ..core.database import DatabaseManager, get_db
from ..core.security import security_manager


class DataFactory:
    """向测试数据库写入活动、人员与票务数据"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def _insert(self, sql: str, params: list) -> int:
        with self.db.transaction() as conn:
            return conn.execute(sql + " RETURNING id", params).fetchone()[0]

    def event(self, start=date(2024, 7, 10), end=date(2024, 7, 12),
              setup_start: Optional[date] = date(2024, 7, 8),
              teardown_end: Optional[date] = None, name: str = "夏季音乐节") -> int:
        return self._insert(
            "INSERT INTO events(name, start_date, end_date, setup_start_date, teardown_end_date) VALUES (?,?,?,?,?)",
            [name, start, end, setup_start, teardown_end],
        )

    def set_event_dates(self, event_id: int, **dates):
        with self.db.transaction() as conn:
            for column, value in dates.items():
                conn.execute(f"UPDATE events SET {column}=? WHERE id=?", [value, event_id])

    def user(self, first_name: str = "Alice", last_name: str = "Martin", pseudo: Optional[str] = None,
             email: Optional[str] = None, phone: Optional[str] = None) -> int:
        return self._insert(
            "INSERT INTO users(first_name, last_name, pseudo, email, phone) VALUES (?,?,?,?,?)",
            [first_name, last_name, pseudo, email or f"{first_name.lower()}@example.com", phone],
        )

    def volunteer(self, event_id: int, user_id: Optional[int] = None, status: str = "ACCEPTED",
                  setup: bool = False, event: bool = True, teardown: bool = False,
                  arrival: Optional[str] = None, departure: Optional[str] = None,
                  dietary: Optional[str] = None, allergies: Optional[str] = None,
                  severity: Optional[str] = None, emergency_name: Optional[str] = None,
                  emergency_phone: Optional[str] = None) -> int:
        user_id = user_id or self.user()
        return self._insert(
            """
            INSERT INTO volunteers(event_id, user_id, status, setup_available, event_available,
                teardown_available, arrival_datetime, departure_datetime, dietary_preference,
                allergies, allergy_severity, emergency_contact_name, emergency_contact_phone)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            [event_id, user_id, status, setup, event, teardown, arrival, departure,
             dietary, allergies, severity, emergency_name, emergency_phone],
        )

    def artist(self, event_id: int, user_id: Optional[int] = None, arrival: Optional[str] = None,
               departure: Optional[str] = None, dietary: Optional[str] = None,
               allergies: Optional[str] = None) -> int:
        user_id = user_id or self.user("Bob", "Durand")
        return self._insert(
            """
            INSERT INTO artists(event_id, user_id, arrival_datetime, departure_datetime,
                dietary_preference, allergies)
            VALUES (?,?,?,?,?,?)
            """,
            [event_id, user_id, arrival, departure, dietary, allergies],
        )

    def tier(self, event_id: int, name: str = "Pass 3 jours") -> int:
        return self._insert("INSERT INTO ticket_tiers(event_id, name) VALUES (?,?)", [event_id, name])

    def option(self, event_id: int, name: str = "Repas") -> int:
        return self._insert("INSERT INTO ticket_options(event_id, name) VALUES (?,?)", [event_id, name])

    def order_item(self, event_id: int, tier_id: Optional[int], option_ids: Iterable[int] = (),
                   state: str = "Valid", order_status: str = "Processed",
                   first_name: str = "Claire", last_name: str = "Petit") -> int:
        order_id = self._insert(
            "INSERT INTO ticket_orders(event_id, status) VALUES (?,?)", [event_id, order_status])
        item_id = self._insert(
            """
            INSERT INTO ticket_order_items(order_id, tier_id, state, first_name, last_name, email)
            VALUES (?,?,?,?,?,?)
            """,
            [order_id, tier_id, state, first_name, last_name, f"{first_name.lower()}@example.com"],
        )
        with self.db.transaction() as conn:
            for option_id in option_ids:
                conn.execute(
                    "INSERT INTO ticket_order_item_options(order_item_id, option_id) VALUES (?,?)",
                    [item_id, option_id],
                )
        return item_id

    def grant_tier(self, tier_id: int, meal_id: int):
        with self.db.transaction() as conn:
            conn.execute("INSERT INTO tier_meal_grants(tier_id, meal_id) VALUES (?,?)", [tier_id, meal_id])

    def grant_option(self, option_id: int, meal_id: int):
        with self.db.transaction() as conn:
            conn.execute("INSERT INTO option_meal_grants(option_id, meal_id) VALUES (?,?)", [option_id, meal_id])

    def slot_id(self, event_id: int, day: date, meal_type: str) -> int:
        row = self.db.execute_one(
            "SELECT id FROM meal_slots WHERE event_id=? AND date=? AND meal_type=?",
            [event_id, day, meal_type],
        )
        return row[0]

    def selection_id(self, table: str, owner_column: str, owner_id: int, meal_id: int) -> int:
        row = self.db.execute_one(
            f"SELECT id FROM {table} WHERE {owner_column}=? AND meal_id=?", [owner_id, meal_id])
        return row[0]


@pytest.fixture
def test_db():
    """测试数据库（内存）"""
    db_manager = DatabaseManager(":memory:")
    db_manager.init_database()

    yield db_manager

    # 清理
    db_manager.close()


@pytest.fixture
def factory(test_db):
    return DataFactory(test_db)


@pytest.fixture
def event_id(factory):
    """示例活动：7月10-12日正式活动，7月8日开始布置，无撤场"""
    return factory.event()


@pytest.fixture
def app_instance(test_db):
    """测试应用"""
    app = create_app()
    app.dependency_overrides[get_db] = lambda: test_db

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    return TestClient(app_instance)


@pytest.fixture
def auth_headers():
    """生成带声明的 Authorization header"""
    def _headers(user_id: int = 1, managed_event_ids=(), volunteer_ids=(), artist_ids=()):
        token = security_manager.create_jwt_token(user_id, {
            "managed_event_ids": list(managed_event_ids),
            "volunteer_ids": list(volunteer_ids),
            "artist_ids": list(artist_ids),
        })
        return {"Authorization": f"Bearer {token}"}
    return _headers
