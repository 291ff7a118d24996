import json
import os
from collections.abc import Iterable

import yaml

from flow_errors import FlowError


class ConfigFileError(FlowError):
    pass


def read_json_config(file: str):
    with open(file) as fh:
        try:
            config = json.load(fh)
        except json.JSONDecodeError as e:
            raise ConfigFileError(f"Error parsing {file}: {e}")
    if isinstance(config, dict):
        config.pop("//", None)
    return config


def read_yaml_config(file: str):
    with open(file) as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as e:
            raise ConfigFileError(f"Error parsing {file}: {e}")


def find_config(basename: str, formats: Iterable[str] = ("yaml", "json")):
    for fmt in formats:
        file = f"{basename}.{fmt}"
        if os.path.exists(file):
            return file
    return None


def read_config_file(file: str):
    if file.endswith(".json"):
        config = read_json_config(file)
    elif file.endswith((".yaml", ".yml")):
        config = read_yaml_config(file)
    else:
        raise ConfigFileError(f"Unexpected configuration file format: {file}")
    if not isinstance(config, dict):
        raise ConfigFileError(f"{file} must contain a mapping of settings")
    return config
