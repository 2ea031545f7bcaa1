#!filepath: structsvm/config/app_config.py
import os
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .log_config import LogConfig
from .training_config import TrainingConfig


def package_root() -> str:
    """
    structsvm/config/app_config.py → structsvm/config → structsvm
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


class ParallelConfig(BaseModel):
    max_workers: Optional[int] = None


class AppConfig(BaseModel):
    log: LogConfig = Field(default_factory=LogConfig)
    training: TrainingConfig
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "AppConfig":
        """
        加载 YAML 配置 + .env
        - 默认使用 structsvm/config/base.yml
        - STRUCTSVM_LOG_LEVEL / STRUCTSVM_LOG_DIR 覆盖 log 段
        """
        # 1) .env（当前工作目录）
        load_dotenv()

        # 2) 配置文件路径
        if path is None:
            path = os.path.join(package_root(), "config", "base.yml")

        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        # 3) 读取 YAML
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        log = dict(raw.get("log") or {})
        if os.getenv("STRUCTSVM_LOG_LEVEL"):
            log["level"] = os.getenv("STRUCTSVM_LOG_LEVEL")
        if os.getenv("STRUCTSVM_LOG_DIR"):
            log["dir"] = os.getenv("STRUCTSVM_LOG_DIR")
        raw["log"] = log

        return cls(**raw)
