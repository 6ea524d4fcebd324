"""
数据库连接和管理模块
提供 DuckDB 连接、表结构定义和事务管理

表说明：
- events: 活动（含布置/撤场日期）
- users: 人员基本信息
- volunteers / artists: 志愿者与艺人档案（到达/离开时间、饮食信息）
- meal_slots: 餐次（日期 × 餐别），由对账服务维护
- volunteer_meal_selections / artist_meal_selections: 选餐记录（积极同步）
- ticket_*: 票务订单、票档、附加选项及其餐次授权
- order_item_meals: 票务参与者的核销记录（首次核销时惰性创建）
- logs: 操作审计日志

DuckDB 不支持 ON DELETE CASCADE，级联删除由服务层在同一事务内显式执行。
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

import duckdb

from ..config.settings import settings
from .exceptions import BaseApplicationError, ConcurrencyError, DatabaseError

logger = logging.getLogger(__name__)

SCHEMA_SQL = r"""
CREATE SEQUENCE IF NOT EXISTS events_id_seq;
CREATE TABLE IF NOT EXISTS events (
  id INTEGER DEFAULT nextval('events_id_seq') PRIMARY KEY,
  name TEXT NOT NULL,
  start_date DATE NOT NULL,
  end_date DATE NOT NULL,
  setup_start_date DATE,
  teardown_end_date DATE,
  created_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS users_id_seq;
CREATE TABLE IF NOT EXISTS users (
  id INTEGER DEFAULT nextval('users_id_seq') PRIMARY KEY,
  first_name TEXT,
  last_name TEXT,
  pseudo TEXT,
  email TEXT,
  phone TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS volunteers_id_seq;
CREATE TABLE IF NOT EXISTS volunteers (
  id INTEGER DEFAULT nextval('volunteers_id_seq') PRIMARY KEY,
  event_id INTEGER NOT NULL,
  user_id INTEGER NOT NULL,
  status TEXT CHECK(status IN ('PENDING','ACCEPTED','REJECTED')) NOT NULL DEFAULT 'PENDING',
  setup_available BOOLEAN DEFAULT FALSE,
  event_available BOOLEAN DEFAULT TRUE,
  teardown_available BOOLEAN DEFAULT FALSE,
  arrival_datetime TEXT,    -- YYYY-MM-DD_timeOfDay
  departure_datetime TEXT,
  dietary_preference TEXT,
  allergies TEXT,
  allergy_severity TEXT,
  emergency_contact_name TEXT,
  emergency_contact_phone TEXT,
  UNIQUE(event_id, user_id)
);

CREATE SEQUENCE IF NOT EXISTS artists_id_seq;
CREATE TABLE IF NOT EXISTS artists (
  id INTEGER DEFAULT nextval('artists_id_seq') PRIMARY KEY,
  event_id INTEGER NOT NULL,
  user_id INTEGER NOT NULL,
  arrival_datetime TEXT,
  departure_datetime TEXT,
  dietary_preference TEXT,
  allergies TEXT,
  allergy_severity TEXT,
  emergency_contact_name TEXT,
  emergency_contact_phone TEXT,
  UNIQUE(event_id, user_id)
);

CREATE SEQUENCE IF NOT EXISTS meal_slots_id_seq;
CREATE TABLE IF NOT EXISTS meal_slots (
  id INTEGER DEFAULT nextval('meal_slots_id_seq') PRIMARY KEY,
  event_id INTEGER NOT NULL,
  date DATE NOT NULL,
  meal_type TEXT CHECK(meal_type IN ('BREAKFAST','LUNCH','DINNER')) NOT NULL,
  phases_json TEXT NOT NULL,
  enabled BOOLEAN DEFAULT TRUE,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS uniq_meal_slot ON meal_slots(event_id, date, meal_type);

CREATE SEQUENCE IF NOT EXISTS volunteer_meal_selections_id_seq;
CREATE TABLE IF NOT EXISTS volunteer_meal_selections (
  id INTEGER DEFAULT nextval('volunteer_meal_selections_id_seq') PRIMARY KEY,
  volunteer_id INTEGER NOT NULL,
  meal_id INTEGER NOT NULL,
  accepted BOOLEAN DEFAULT TRUE,
  consumed_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  UNIQUE(volunteer_id, meal_id)
);

CREATE SEQUENCE IF NOT EXISTS artist_meal_selections_id_seq;
CREATE TABLE IF NOT EXISTS artist_meal_selections (
  id INTEGER DEFAULT nextval('artist_meal_selections_id_seq') PRIMARY KEY,
  artist_id INTEGER NOT NULL,
  meal_id INTEGER NOT NULL,
  accepted BOOLEAN DEFAULT TRUE,
  after_show BOOLEAN DEFAULT FALSE,
  consumed_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  UNIQUE(artist_id, meal_id)
);

CREATE SEQUENCE IF NOT EXISTS ticket_tiers_id_seq;
CREATE TABLE IF NOT EXISTS ticket_tiers (
  id INTEGER DEFAULT nextval('ticket_tiers_id_seq') PRIMARY KEY,
  event_id INTEGER NOT NULL,
  name TEXT NOT NULL
);

CREATE SEQUENCE IF NOT EXISTS ticket_options_id_seq;
CREATE TABLE IF NOT EXISTS ticket_options (
  id INTEGER DEFAULT nextval('ticket_options_id_seq') PRIMARY KEY,
  event_id INTEGER NOT NULL,
  name TEXT NOT NULL
);

CREATE SEQUENCE IF NOT EXISTS ticket_orders_id_seq;
CREATE TABLE IF NOT EXISTS ticket_orders (
  id INTEGER DEFAULT nextval('ticket_orders_id_seq') PRIMARY KEY,
  event_id INTEGER NOT NULL,
  status TEXT CHECK(status IN ('Pending','Processed','Refunded','Canceled')) NOT NULL,
  created_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS ticket_order_items_id_seq;
CREATE TABLE IF NOT EXISTS ticket_order_items (
  id INTEGER DEFAULT nextval('ticket_order_items_id_seq') PRIMARY KEY,
  order_id INTEGER NOT NULL,
  tier_id INTEGER,
  state TEXT CHECK(state IN ('Pending','Valid','Processed','Refunded','Canceled')) NOT NULL,
  first_name TEXT,
  last_name TEXT,
  email TEXT
);

CREATE INDEX IF NOT EXISTS idx_order_items_order ON ticket_order_items(order_id);

CREATE TABLE IF NOT EXISTS ticket_order_item_options (
  order_item_id INTEGER NOT NULL,
  option_id INTEGER NOT NULL,
  PRIMARY KEY (order_item_id, option_id)
);

CREATE TABLE IF NOT EXISTS tier_meal_grants (
  tier_id INTEGER NOT NULL,
  meal_id INTEGER NOT NULL,
  PRIMARY KEY (tier_id, meal_id)
);

CREATE TABLE IF NOT EXISTS option_meal_grants (
  option_id INTEGER NOT NULL,
  meal_id INTEGER NOT NULL,
  PRIMARY KEY (option_id, meal_id)
);

CREATE SEQUENCE IF NOT EXISTS order_item_meals_id_seq;
CREATE TABLE IF NOT EXISTS order_item_meals (
  id INTEGER DEFAULT nextval('order_item_meals_id_seq') PRIMARY KEY,
  order_item_id INTEGER NOT NULL,
  meal_id INTEGER NOT NULL,
  consumed_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  UNIQUE(order_item_id, meal_id)
);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id INTEGER,
  actor_id INTEGER,
  action TEXT,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_actor ON logs(actor_id);
CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


def utcnow() -> datetime:
    """当前UTC时间（无时区，与 TIMESTAMP 列一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def placeholders(values) -> str:
    """生成 IN 子句的占位符"""
    return ",".join(["?"] * len(values))


class DatabaseManager:
    """数据库管理器，封装连接与事务"""

    def __init__(self, db_path: Optional[str] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            db_url = db_url[len("duckdb://"):]
        if db_url.endswith(":memory:"):
            return ":memory:"
        Path(db_url).parent.mkdir(parents=True, exist_ok=True)
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接"""
        if self._connection is None:
            self._connection = duckdb.connect(self.db_path)
            self._init_schema()
        return self._connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self.connection

    def _init_schema(self):
        """初始化数据库表结构"""
        try:
            self._connection.execute(SCHEMA_SQL)
        except duckdb.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}")

    def init_database(self):
        """初始化数据库"""
        self.get_connection()

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        同一连接上的事务由 RLock 串行化；异常时回滚，
        业务异常原样抛出，唯一约束冲突转换为 ConcurrencyError，
        其他数据库异常转换为 DatabaseError。
        """
        with self._lock:
            conn = self.connection
            conn.execute("BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception as e:
                try:
                    conn.execute("ROLLBACK")
                except duckdb.Error:
                    logger.warning("Rollback failed after %s", type(e).__name__)

                if isinstance(e, BaseApplicationError):
                    raise
                if isinstance(e, duckdb.ConstraintException):
                    raise ConcurrencyError("数据已被并发修改", details={"reason": str(e)}) from e
                if isinstance(e, duckdb.Error):
                    raise DatabaseError(f"数据库操作失败: {e}") from e
                raise

    def execute_query(self, query: str, params: Optional[list] = None) -> list:
        """执行查询并返回结果"""
        with self._lock:
            try:
                return self.connection.execute(query, params or []).fetchall()
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}") from e

    def execute_one(self, query: str, params: Optional[list] = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        with self._lock:
            try:
                return self.connection.execute(query, params or []).fetchone()
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}") from e


# 全局数据库管理器实例
db_manager = DatabaseManager()


def get_db() -> DatabaseManager:
    """FastAPI 依赖：返回当前数据库管理器"""
    return db_manager


def record_log(conn, action: str, actor_id: Optional[int], detail: dict,
               user_id: Optional[int] = None):
    """写入操作审计日志（在调用方事务内）"""
    conn.execute(
        "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
        [user_id, actor_id, action, json.dumps(detail, ensure_ascii=False, default=str)],
    )
