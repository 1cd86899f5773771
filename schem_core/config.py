"""
配置与日志 — settings.yaml 加载、Settings 数据类、日志初始化
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "settings.yaml"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    """配置日志系统"""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    # 降低 Pillow 日志级别
    logging.getLogger("PIL").setLevel(logging.WARNING)


def load_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """加载 YAML 配置文件，不存在时返回空字典"""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    logger.debug("Config file not found: %s", config_path)
    return {}


@dataclass
class Settings:
    """运行时配置"""
    save_dir: str = "schematics"
    per_player_schematics: bool = False
    web_url: str = "https://empcraft.com/fawe/"
    web_assets: str = "https://empcraft.com/fawe/"
    compression_level: int = 8
    index_mode: int = 0

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "Settings":
        """从 load_config() 的结果构建，缺失项使用默认值"""
        paths = config.get("paths", {}) or {}
        web = config.get("web", {}) or {}
        clip = config.get("clipboard", {}) or {}
        defaults = cls()
        return cls(
            save_dir=str(paths.get("save_dir", defaults.save_dir)),
            per_player_schematics=bool(paths.get("per_player_schematics", defaults.per_player_schematics)),
            web_url=str(web.get("url", defaults.web_url)),
            web_assets=str(web.get("assets", defaults.web_assets)),
            compression_level=int(clip.get("compression_level", defaults.compression_level)),
            index_mode=int(clip.get("index_mode", defaults.index_mode)),
        )

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "Settings":
        return cls.from_dict(load_config(path))
