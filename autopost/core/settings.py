from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_structured: bool = Field(default=False, alias="LOG_STRUCTURED")

    database_url: str = Field(default="sqlite:///./autopost.db", alias="DATABASE_URL")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    rq_queue_name: str = Field(default="default", alias="RQ_QUEUE_NAME")
    rq_queue_io: str = Field(default="io", alias="RQ_QUEUE_IO")
    rq_queue_render: str = Field(default="render", alias="RQ_QUEUE_RENDER")

    # AI collaborators
    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    veo_model: str = Field(default="veo-3.1-generate-preview", alias="VEO_MODEL")

    # TikTok OAuth app
    tiktok_client_key: str = Field(default="", alias="TIKTOK_CLIENT_KEY")
    tiktok_client_secret: str = Field(default="", alias="TIKTOK_CLIENT_SECRET")
    tiktok_redirect_uri: str = Field(default="http://localhost:8000/api/oauth/tiktok/callback", alias="TIKTOK_REDIRECT_URI")

    # Notifications (empty = disabled)
    line_notify_token: str = Field(default="", alias="LINE_NOTIFY_TOKEN")
    discord_webhook_url: str = Field(default="", alias="DISCORD_WEBHOOK_URL")

    # Media
    media_root: str = Field(default="static", alias="MEDIA_ROOT")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")
    music_dir: str = Field(default="static/audio", alias="MUSIC_DIR")
    tts_voice: str = Field(default="th-TH-PremwadeeNeural", alias="TTS_VOICE")
    edge_tts_bin: str = Field(default="edge-tts", alias="EDGE_TTS_BIN")

    cron_secret: str = Field(default="", alias="CRON_SECRET")
    poll_interval_seconds: int = Field(default=300, alias="POLL_INTERVAL_SECONDS")
    rate_limit_backend: str = Field(default="memory", alias="RATE_LIMIT_BACKEND")

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
