from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Supabase
    supabase_url: str
    supabase_service_key: str
    supabase_anon_key: str

    # Email
    resend_api_key: str = ""
    resend_from_email: str = "change-orders@ordino.app"
    resend_from_name: str = "Ordino"
    email_timeout_seconds: float = 20.0

    # JWT (client sign links)
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    action_token_expire_hours: int = 24 * 14

    # Redis / Celery
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Change orders
    change_order_bucket: str = "change-orders"
    co_number_prefix: str = "CO-"
    co_number_digits: int = 3
    default_company_name: str = "Your Company"

    # Signature pad backing resolution
    signature_canvas_width: int = 400
    signature_canvas_height: int = 150

    # App
    app_base_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:8000"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
