"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # OpenAI (responder)
    openai_api_key: str
    responder_model: str = "gpt-4o-mini"
    responder_max_tokens: int = 400
    responder_max_chars: int = 1500

    # Conferencing platform
    conferencing_api_url: str = "http://localhost:9000"
    conferencing_api_key: str = ""
    media_region: str = "us-east-1"
    media_stream_pool_arn: str = ""

    # Telephony platform (out-of-band call updates)
    telephony_api_url: str = "http://localhost:9001"
    telephony_api_key: str = ""
    sip_media_application_id: str = ""

    # Live media source
    media_api_url: str = "http://localhost:9002"
    media_api_key: str = ""

    # Streaming transcription
    transcription_url: str = "wss://api.deepgram.com/v1/listen"
    transcription_api_key: str = ""
    transcription_language: str = "en-US"
    transcription_sample_rate: int = 48000
    transcription_encoding: str = "opus"

    # Transcoding
    ffmpeg_path: str = "ffmpeg"
    transcode_chunk_size: int = 4096

    # Consumer pipeline
    consumer_url: str = "http://localhost:8080"
    segment_backlog_warning: int = 4

    # Call control
    onboarding_prompt: str = (
        "Please wait while we connect you with a bot.  "
        "You can ask a question and the bot will answer it."
    )
    hold_audio_bucket: str = ""
    hold_audio_key: str = "timer.wav"
    hold_audio_repeat: int = 2
    voice_id: str = "Joanna"
    voice_engine: str = "neural"
    language_code: str = "en-US"
    controller_timeout_seconds: float = 50.0

    # HTTP clients
    http_timeout_seconds: float = 10.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
