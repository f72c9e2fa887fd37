import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-key")

    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///library.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens expire after 7 days by default
    TOKEN_MAX_AGE = int(os.getenv("TOKEN_MAX_AGE", "604800"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Default manager account created by `flask seed`
    MANAGER_NAME = os.getenv("MANAGER_NAME", "Library Manager")
    MANAGER_EMAIL = os.getenv("MANAGER_EMAIL", "manager@library.com")
    MANAGER_PASSWORD = os.getenv("MANAGER_PASSWORD", "manager123")

    DEFAULT_CATEGORIES = ["Fiction", "Science", "History", "Technology", "Business"]


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"
