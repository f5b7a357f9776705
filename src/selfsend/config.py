import os
import tomllib
from pathlib import Path

pkg_root = Path(__file__).parent
config_file = Path(os.getenv("SELFSEND_CONFIG", pkg_root / "config.toml"))


def load_config(path: str | Path = config_file) -> dict:
    cfg = tomllib.loads(Path(path).read_text())
    d = cfg.setdefault("defaults", {})
    d.setdefault("min_delay", 10)
    d.setdefault("max_delay", 3600)
    d.setdefault("gas_price", "auto")
    cfg.setdefault("timeout", {}).setdefault("confirmation", 600)
    cfg["timeout"].setdefault("probe", 5.0)
    cfg.setdefault("events", {}).setdefault("queue_size", 1000)
    cfg["events"].setdefault("history", 5000)
    cfg.setdefault("networks", {})
    return cfg


cfg = load_config()
