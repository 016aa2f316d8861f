import os
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class Environment(str, Enum):
    TEST = 'test'
    PRODUCTION = 'production'
    DEVELOP = 'develop'


class Settings:
    ENVIRONMENT: Environment = Environment(os.getenv('ENVIRONMENT') or Environment.TEST)
    DB_USERNAME: str = os.getenv('DB_USERNAME')
    DB_PASSWORD: str = os.getenv('DB_PASSWORD')
    DB_HOST: str = os.getenv('DB_HOST')
    DB_PORT: str = os.getenv('DB_PORT')
    DB_NAME: str = os.getenv('DB_NAME')

    SQLALCHEMY_TEST_DATABASE_URL = 'sqlite:///:memory:'
    DATABASE_URL: str = (
        f'postgresql://{DB_USERNAME}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}'
        if ENVIRONMENT != Environment.TEST
        else SQLALCHEMY_TEST_DATABASE_URL
    )

    SECRET_KEY: str = os.getenv('SECRET_KEY', '')
    # Signing secret for check-in tokens. Read once when the signer is built;
    # tokens minted under a previous secret stop validating after a restart.
    CHECK_IN_TOKEN_SECRET: str = os.getenv('CHECK_IN_TOKEN_SECRET') or SECRET_KEY
    ROTATING_TOKEN_TTL_SECONDS: int = int(os.getenv('ROTATING_TOKEN_TTL_SECONDS', 60))
    STATIC_TOKEN_TTL_SECONDS: int = int(os.getenv('STATIC_TOKEN_TTL_SECONDS', 86400))

    ATTENDANCE_API_KEY: str = os.getenv('ATTENDANCE_API_KEY')
    FRONTEND_URL: str = os.getenv('FRONTEND_URL')


settings = Settings()
