from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    llm_provider: str = Field(default="bedrock", alias="LLM_PROVIDER")
    llm_settings_path: str = Field(default=".docchat/llm_settings.json", alias="LLM_SETTINGS_PATH")

    aws_region: str = Field(default="ap-southeast-1", alias="AWS_REGION")
    aws_access_key_id: str = Field(default="", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", alias="AWS_SECRET_ACCESS_KEY")
    bedrock_model_id: str = Field(default="anthropic.claude-v2", alias="BEDROCK_MODEL_ID")

    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")

    llm_temperature: float = Field(default=0.1, alias="LLM_TEMPERATURE")
    llm_timeout_sec: float = Field(default=90.0, alias="LLM_TIMEOUT_SEC")
    llm_max_retries: int = Field(default=3, alias="LLM_MAX_RETRIES")
    llm_retry_base_delay_sec: float = Field(default=1.0, alias="LLM_RETRY_BASE_DELAY_SEC")

    sqlite_path: str = Field(default=".docchat/database.sqlite", alias="SQLITE_PATH")
    upload_dir: str = Field(default=".docchat/uploads", alias="UPLOAD_DIR")
    log_dir: str = Field(default=".docchat", alias="LOG_DIR")

    context_max_chars: int = Field(default=5000, ge=2000, le=5000, alias="CONTEXT_MAX_CHARS")
    history_window: int = Field(default=5, alias="HISTORY_WINDOW")
    max_tokens_default: int = Field(default=800, alias="MAX_TOKENS_DEFAULT")
    max_tokens_extended: int = Field(default=1200, alias="MAX_TOKENS_EXTENDED")
    long_question_chars: int = Field(default=200, alias="LONG_QUESTION_CHARS")

    default_greeting: str = Field(
        default="Hello! I'm your AI assistant. How can I help you today?",
        alias="DEFAULT_GREETING",
    )
    default_updated_by: str = Field(default="Admin@email.com", alias="DEFAULT_UPDATED_BY")

    host: str = Field(default="127.0.0.1", alias="DOCCHAT_HOST")
    port: int = Field(default=3001, alias="DOCCHAT_PORT")


settings = Settings()


def ensure_runtime_dirs() -> None:
    Path(settings.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.log_dir).mkdir(parents=True, exist_ok=True)
