from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite:///postboard.db")
    api_title: str = Field("Postboard API")
    jwt_secret: str = Field("your-secret-key")
    jwt_algorithm: str = Field("HS256")
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    excerpt_length: int = Field(200, gt=0)
    auth_rate_limit: str = Field("5/minute")
    rate_limit_enabled: bool = Field(True)
    api_base_url: str = Field("http://localhost:8000")


settings = Settings()
