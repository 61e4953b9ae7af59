"""
Configuration and logging setup.

Settings come from environment variables so the schemes, the benchmark CLI
and the tests can share one set of defaults:

    PHE_KEY_DIR         directory of the default key files (system temp dir)
    PHE_KEY_BACKEND     'file' or 'keyring'
    PHE_LOG_DIR         directory of the log file ('logs')
    PHE_LOG_LEVEL       console log level ('INFO')
    PHE_NEG_DIVISOR     negativity divisor, 1 disables negative numbers (2)
    PHE_LEDGER_TYPE     'range' or 'array' ('range')
    PHE_ASYM_KEY_BITS   modulus size of the Paillier / ElGamal baselines (2048)
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from mask_ledger import LedgerType, parse_ledger_type

LOG_FORMAT = '%(asctime)s [%(levelname)s] [%(filename)s:%(lineno)d] %(message)s'
LOG_FILE_NAME = "sym_phe.log"

DEFAULT_NEG_DIVISOR = 2
DEFAULT_ASYM_KEY_BITS = 2048


@dataclass
class PHEConfig:
    """Runtime settings shared by the schemes and the benchmark harness."""
    key_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    key_backend: str = "file"
    log_dir: Path = Path("logs")
    log_level: str = "INFO"
    neg_divisor: int = DEFAULT_NEG_DIVISOR
    ledger_type: LedgerType = LedgerType.RANGE
    asym_key_bits: int = DEFAULT_ASYM_KEY_BITS

    def key_path(self, name: str) -> str:
        """Path of a key file inside the configured key directory."""
        return str(self.key_dir / name)


def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> PHEConfig:
    """
    Build a PHEConfig from environment variables.

    Args:
        env: Mapping to read instead of os.environ

    Returns:
        The configuration

    Raises:
        ValueError: If a variable holds an invalid value
    """
    if env is None:
        env = os.environ

    config = PHEConfig()
    if env.get("PHE_KEY_DIR"):
        config.key_dir = Path(env["PHE_KEY_DIR"])
    if env.get("PHE_LOG_DIR"):
        config.log_dir = Path(env["PHE_LOG_DIR"])

    backend = (env.get("PHE_KEY_BACKEND") or config.key_backend).lower()
    if backend not in ("file", "keyring"):
        raise ValueError(f"PHE_KEY_BACKEND must be 'file' or 'keyring', got {backend!r}")
    config.key_backend = backend

    level = (env.get("PHE_LOG_LEVEL") or config.log_level).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"PHE_LOG_LEVEL is not a logging level: {level!r}")
    config.log_level = level

    config.neg_divisor = _int_setting(env, "PHE_NEG_DIVISOR", DEFAULT_NEG_DIVISOR, 1)
    config.asym_key_bits = _int_setting(env, "PHE_ASYM_KEY_BITS", DEFAULT_ASYM_KEY_BITS, 64)

    try:
        config.ledger_type = parse_ledger_type(env.get("PHE_LEDGER_TYPE") or None)
    except ValueError as e:
        raise ValueError(f"PHE_LEDGER_TYPE: {e}") from None
    return config


def configure_logging(config: Optional[PHEConfig] = None) -> logging.Logger:
    """
    Install console and file logging for command line use.

    The console handler uses the configured level; the file handler in
    `config.log_dir` records everything down to DEBUG.

    Returns:
        The root logger
    """
    if config is None:
        config = load_config()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.log_level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_dir / LOG_FILE_NAME, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        root.warning(f"Could not create log file in {config.log_dir}, logging to console only: {e}")

    return root
