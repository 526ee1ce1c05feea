"""Flask application configuration."""
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


class Config:
    """Base configuration."""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Essay analysis
    ESSAY_MAX_CHARS = int(os.environ.get('ESSAY_MAX_CHARS', 50000))
    ANALYSIS_STAGE_TIMEOUT_SECONDS = float(os.environ.get('ANALYSIS_STAGE_TIMEOUT_SECONDS', 60))
    STRUCTURE_VALIDATION_ENABLED = _env_flag('STRUCTURE_VALIDATION_ENABLED', False)
    ANNOTATION_AI_ENABLED = _env_flag('ANNOTATION_AI_ENABLED', True)

    # CORS (for development)
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Test configuration: short stage timeout, no optional AI passes."""
    DEBUG = False
    TESTING = True
    ANALYSIS_STAGE_TIMEOUT_SECONDS = 5
    STRUCTURE_VALIDATION_ENABLED = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
