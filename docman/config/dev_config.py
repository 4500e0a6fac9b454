from .config import BaseConfig


class DevConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = "DEBUG"
