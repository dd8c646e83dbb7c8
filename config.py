"""
Configuration management for the Quiz Question Ingestion Service
"""
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application Configuration
    app_name: str = "Quiz Question Ingestion Service"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Security Configuration
    cors_origins: str = "*"

    # Database Configuration
    database_url: str = "sqlite:///./quiz.db"
    database_echo: bool = False

    # Question Generator Configuration
    generator_base_url: str = "http://localhost:5000"
    generator_timeout_seconds: float = 120.0
    result_stream_timeout_seconds: float = 30.0

    # Circuit Breaker Configuration
    circuit_breaker_name: str = "question-generation"
    circuit_breaker_failure_rate_threshold: float = 50.0  # percent
    circuit_breaker_sliding_window_size: int = 10
    circuit_breaker_minimum_number_of_calls: int = 5
    circuit_breaker_wait_duration_seconds: float = 60.0
    circuit_breaker_permitted_calls_in_half_open_state: int = 3

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
