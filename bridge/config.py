from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    backend_webhook_url: str = "http://localhost:5678/webhook/whatsapp-rag"
    backend_timeout_seconds: float = 60.0

    bot_names: List[str] = ["yesbank bot", "yes bank bot", "ai response"]
    bot_number_fallbacks: List[str] = ["65559051915364"]
    bot_commands: List[str] = ["/bot", "!bot"]
    triggers_file: Optional[str] = None

    transport_base_url: str = "http://localhost:3001"
    transport_token: Optional[str] = None
    transport_timeout_seconds: float = 30.0
    pairing_method: str = "qr"
    reconnect_delay_seconds: float = 2.0
    logout_restart_delay_seconds: float = 1.0
    pairing_ready_timeout_seconds: float = 10.0

    ocr_enabled: bool = True
    ocr_lang: str = "eng+hin"
    tesseract_cmd: Optional[str] = None

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
