import logging
import logging.config
import os

import yaml


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(default_path="logging.yaml", default_level=logging.INFO, env_key="LOG_CFG"):
    """
    Setup logging from a YAML file whose ``logging`` section is a dictConfig.
    Falls back to basicConfig when the file is absent or unusable.
    """
    path = os.getenv(env_key, None) or default_path
    if not os.path.exists(path):
        logging.basicConfig(level=default_level, format=DEFAULT_FORMAT)
        logging.getLogger(__name__).debug("Logging config not found: %s. Using defaults", path)
        return

    with open(path, "rt", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f.read()) or {}
            if isinstance(config, dict) and "logging" in config:
                logging.config.dictConfig(config["logging"])
                return
            logging.basicConfig(level=default_level, format=DEFAULT_FORMAT)
        except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
            logging.basicConfig(level=default_level, format=DEFAULT_FORMAT)
            logging.getLogger(__name__).warning("Error in logging configuration %s: %s. Using defaults", path, e)
