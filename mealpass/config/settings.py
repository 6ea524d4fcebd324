import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # 数据库配置
    database_url: str = "duckdb://./mealpass/data/mealpass.duckdb"

    # JWT配置（调用方身份由外部认证服务签发）
    jwt_secret_key: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 12

    # API配置
    api_title: str = "MealPass API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 开发模式
    debug: bool = False
    log_level: str = "INFO"

    # 同步时保留已核销的选餐记录（即使参与者已不再符合条件）
    preserve_consumed_selections: bool = True

    # 检索与分页
    search_min_length: int = 2
    default_page_size: int = 20
    max_page_size: int = 100


def load_settings(env: str = None) -> Settings:
    """按 MEALPASS_ENV 选择配置类"""
    env = env or os.getenv("MEALPASS_ENV", "production")
    if env == "development":
        from .environments.development import DevelopmentSettings
        return DevelopmentSettings()
    return Settings()


# 全局设置实例
settings = load_settings()
