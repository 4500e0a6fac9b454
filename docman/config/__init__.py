from .config import BaseConfig
from .dev_config import DevConfig
from .production import ProductionConfig
from .test_config import TestConfig

CONFIGS = {
    "development": DevConfig,
    "production": ProductionConfig,
    "testing": TestConfig,
}
