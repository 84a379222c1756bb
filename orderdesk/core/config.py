from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    # Backend (REST + push)
    API_BASE_URL: str = "http://localhost:5000/api"
    WS_BASE_URL: str = "ws://localhost:5000/ws"
    LIVE_TRANSPORT: str = "sse"             # sse 또는 ws

    # Timeouts
    REQUEST_TIMEOUT_S: float = 10.0
    FETCH_TIMEOUT_S: float = 8.0            # 주문 목록 bulk fetch

    # Live channel 재연결 정책
    RECONNECT_BASE_DELAY_S: float = 3.0
    RECONNECT_MAX_DELAY_S: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int = 5

    # UI 보조
    RECENTLY_PAID_CLEAR_S: float = 3.0

    # 고객 주문 내역 저장 위치
    HISTORY_DIR: str = "./.orderdesk/history"

    LOG_LEVEL: str = "INFO"

settings = Settings()
