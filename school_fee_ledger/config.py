import logging
import yaml
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CFG_PATH = Path(__file__).parent / 'data' / 'school_config.yaml'

_config_cache: Dict[Path, Dict[str, Any]] = {}


@dataclass(frozen=True)
class BillLabels:
    month_label: str = '{month} Fee'
    arrears_label: str = 'Previous Arrears'

    def for_month(self, month_name: str) -> str:
        return self.month_label.format(month=month_name)


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the school configuration YAML (cached per path)"""
    cfg_path = Path(path) if path is not None else CFG_PATH
    if cfg_path in _config_cache:
        return _config_cache[cfg_path]

    if not cfg_path.exists():
        raise FileNotFoundError(f"School config not found at {cfg_path}")

    logger.debug(f"Loading school config from {cfg_path}")
    config = yaml.safe_load(cfg_path.read_text()) or {}
    _config_cache[cfg_path] = config
    logger.info(f"Loaded school configuration (version {config.get('metadata', {}).get('config_version', 'unknown')})")
    return config


def class_fees(path: Optional[Path] = None) -> Dict[str, Decimal]:
    cfg = load_config(path)
    return {str(name): Decimal(str(fee)) for name, fee in (cfg.get('classes') or {}).items()}


def class_fee(class_name: str, path: Optional[Path] = None) -> Decimal:
    fees = class_fees(path)
    if class_name not in fees:
        raise KeyError(f'Class {class_name} not in config')
    return fees[class_name]


def bill_labels(path: Optional[Path] = None) -> BillLabels:
    settings = load_config(path).get('settings') or {}
    defaults = BillLabels()
    return BillLabels(
        month_label=settings.get('month_label', defaults.month_label),
        arrears_label=settings.get('arrears_label', defaults.arrears_label),
    )


def currency_symbol(path: Optional[Path] = None) -> str:
    return (load_config(path).get('settings') or {}).get('currency_symbol', '₹')
