"""
Configuration settings for Club Community Service
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Club Community Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8005

    # MongoDB (must be a replica set for transactions)
    MONGODB_URL: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGODB_DATABASE: str = "clubs"

    # Auth
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_EMAIL_WHITELIST: str = ""

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    KAFKA_ENABLED: bool = True
    KAFKA_CONSUMER_GROUP: str = "club-community-service"
    KAFKA_TOPIC_POST_CREATED: str = "club.post.created"
    KAFKA_TOPIC_COMMENT_WRITTEN: str = "club.comment.written"

    # Client
    COMMUNITY_SERVICE_URL: str = "http://localhost:8005"

    # Pagination
    MIN_PAGE_LIMIT: int = 1
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 20
    POSTS_PAGE_SIZE: int = 20
    COMMENTS_PAGE_SIZE: int = 10

    # Content limits
    MAX_POST_LENGTH: int = 800
    MAX_COMMENT_LENGTH: int = 400

    # Journey slugs
    JOURNEY_SLUG_FALLBACK: str = "journey"
    JOURNEY_SLUG_MAX_LENGTH: int = 60
    JOURNEY_SLUG_MAX_ATTEMPTS: int = 20

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
