import os
import socket
import logging

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3290

DEFAULTS = {
    "port": DEFAULT_PORT,
    "discovery_timeout": 5.0,
    "protocol_version": 3,
    "service_type": "_flyshare._tcp.local.",
    "peer_name": socket.gethostname(),
    "log_level": "INFO",
    "output_dir": ".",
}


def load_config(path="config.yaml"):
    """
    Load settings from a YAML file, falling back to DEFAULTS for anything
    the file leaves out. A missing file is not an error.
    """
    config = dict(DEFAULTS)
    if not path or not os.path.exists(path):
        logger.debug(f"No config file at {path!r}, using defaults")
        return config

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return config
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    unknown = set(data) - set(DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")

    config.update(data)
    config["port"] = int(config["port"])
    config["discovery_timeout"] = float(config["discovery_timeout"])
    config["protocol_version"] = int(config["protocol_version"])
    logger.debug(f"Loaded config from {path}: {config}")
    return config
