import os
from pathlib import Path
from typing import List, Union

from dotenv import load_dotenv
from omegaconf import OmegaConf
from omegaconf.dictconfig import DictConfig

load_dotenv()
CONFIG_PATH = Path(os.getenv("CONFIG_PATH", Path(__file__).resolve().parents[2] / "config"))


def merge_configs(config_paths: List[Union[str, Path]]) -> DictConfig:
    """
    Merge multiple YAML configuration files with precedence. Later configs override earlier ones. Useful for applying overrides to base configs.

    Args:
        config_paths: List of paths to YAML config files. Later configs take precedence.

    Returns:
        DictConfig: Merged configuration object

    Raises:
        FileNotFoundError: If any config file doesn't exist

    Example:
        >>> config = merge_configs(["config/fetch.yaml", "config/fetch.local.yaml"])
        >>> classifier = ErrorClassifier.from_config(config)
    """
    if not config_paths:
        raise ValueError("config_paths is empty!")

    # Load first config as base
    merged = OmegaConf.load(config_paths[0])

    # Merge remaining configs with precedence
    for config_path in config_paths[1:]:
        config = OmegaConf.load(config_path)
        merged = OmegaConf.unsafe_merge(merged, config)

    return merged


def load_config(name: str, overrides: Union[dict, DictConfig, None] = None, config_dir: Path = CONFIG_PATH) -> DictConfig:
    """
    Load ``<config_dir>/<name>.yaml``.

    A sibling ``<name>.local.yaml`` (untracked, machine-specific tuning such as
    slower delays) is merged on top when present, then in-memory ``overrides``.

    Args:
        name: Config file stem (e.g. "fetch", "selectors")
        overrides: Dict or DictConfig merged on top of the file contents
        config_dir: Directory holding the YAML files (default: CONFIG_PATH from environment)

    Returns:
        DictConfig: Loaded configuration
    """
    config_dir = Path(config_dir)
    paths = [config_dir / f"{name}.yaml"]
    local = config_dir / f"{name}.local.yaml"
    if local.exists():
        paths.append(local)

    config = merge_configs(paths)
    if overrides:
        config = OmegaConf.unsafe_merge(config, OmegaConf.create(overrides))
    return config
