"""
Policy configuration management and loading.

Holds the financial policy constants and the category uplift table, and loads
per-deployment overrides from YAML.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import yaml


class CategoryRisk(Enum):
    """Transit risk profile of a product category."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class CategoryConfig:
    """Uplift rates for a product category."""
    default_uplift_rate: Decimal
    min_rate: Decimal
    max_rate: Decimal
    risk: CategoryRisk = CategoryRisk.MEDIUM

    def __post_init__(self):
        """Validate the rate band is coherent."""
        for name in ("default_uplift_rate", "min_rate", "max_rate"):
            value = getattr(self, name)
            if value < 0 or value > 1:
                raise ValueError(f"{name} must be between 0 and 1")
        if not self.min_rate <= self.default_uplift_rate <= self.max_rate:
            raise ValueError("default_uplift_rate must lie within [min_rate, max_rate]")

    def allows(self, rate: Decimal) -> bool:
        """True if ``rate`` lies within the category's [min_rate, max_rate] band."""
        return self.min_rate <= rate <= self.max_rate


def _category(default: str, low: str, high: str, risk: CategoryRisk) -> CategoryConfig:
    return CategoryConfig(
        default_uplift_rate=Decimal(default),
        min_rate=Decimal(low),
        max_rate=Decimal(high),
        risk=risk,
    )


DEFAULT_CATEGORIES: Dict[str, CategoryConfig] = {
    "jewelry-accessories": _category("0.15", "0.15", "0.18", CategoryRisk.LOW),
    "fashion-apparel": _category("0.22", "0.22", "0.25", CategoryRisk.HIGH),
    "home-decor-fragile": _category("0.25", "0.25", "0.30", CategoryRisk.HIGH),
    "home-decor-textiles": _category("0.20", "0.20", "0.20", CategoryRisk.MEDIUM),
    "leather-goods": _category("0.20", "0.20", "0.20", CategoryRisk.MEDIUM),
    "beauty-personal": _category("0.20", "0.20", "0.20", CategoryRisk.MEDIUM),
    "furniture-woodwork": _category("0.15", "0.15", "0.15", CategoryRisk.MEDIUM),
    "food-essentials": _category("0.12", "0.10", "0.15", CategoryRisk.LOW),
}


@dataclass(frozen=True)
class PolicyConfig:
    """Financial policy constants injected into every component."""
    vat_rate: Decimal = Decimal("0.14")
    cooperative_fee_rate: Decimal = Decimal("0.05")
    logistics_surcharge: Decimal = Decimal("10.00")
    escrow_hold_days: int = 14
    minimum_payout_threshold: Decimal = Decimal("500.00")
    default_deviation_threshold: Decimal = Decimal("0.20")
    max_commit_attempts: int = 3
    volumetric_divisor: Decimal = Decimal("5000")
    max_shipping_subsidy_ratio: Decimal = Decimal("0.25")
    friendly_price_step: Decimal = Decimal("5")
    categories: Dict[str, CategoryConfig] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORIES)
    )

    def __post_init__(self):
        """Validate policy values."""
        for name in ("vat_rate", "cooperative_fee_rate",
                     "default_deviation_threshold", "max_shipping_subsidy_ratio"):
            value = getattr(self, name)
            if value < 0 or value > 1:
                raise ValueError(f"{name} must be between 0 and 1")
        if self.logistics_surcharge < 0:
            raise ValueError("logistics_surcharge must be >= 0")
        if self.escrow_hold_days < 0:
            raise ValueError("escrow_hold_days must be >= 0")
        if self.minimum_payout_threshold < 0:
            raise ValueError("minimum_payout_threshold must be >= 0")
        if self.max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be >= 1")
        if self.volumetric_divisor <= 0:
            raise ValueError("volumetric_divisor must be > 0")
        if self.friendly_price_step <= 0:
            raise ValueError("friendly_price_step must be > 0")

    def get_category(self, category_id: str) -> Optional[CategoryConfig]:
        """Look up a category by identifier (case-insensitive). None if unknown."""
        return self.categories.get(category_id.strip().lower())


DEFAULT_POLICY = PolicyConfig()


_DECIMAL_KEYS = {
    'vat_rate', 'cooperative_fee_rate', 'logistics_surcharge',
    'minimum_payout_threshold', 'default_deviation_threshold',
    'volumetric_divisor', 'max_shipping_subsidy_ratio', 'friendly_price_step',
}
_INT_KEYS = {'escrow_hold_days', 'max_commit_attempts'}


def load_policy_config(path: str) -> PolicyConfig:
    """Load and validate policy configuration from a YAML file.

    Keys that are absent keep their built-in defaults. A ``categories``
    section replaces the default category table unless ``merge_categories``
    is true, in which case it is layered on top of it.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated PolicyConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Policy config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'policy', 'categories', 'merge_categories'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    overrides = {}

    policy_data = raw_config.get('policy', {}) or {}
    if not isinstance(policy_data, dict):
        raise ValueError("'policy' must be a dictionary")

    unknown_policy_keys = set(policy_data.keys()) - _DECIMAL_KEYS - _INT_KEYS
    if unknown_policy_keys:
        raise ValueError(f"Unknown policy keys: {unknown_policy_keys}")

    for key, value in policy_data.items():
        if key in _INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'policy.{key}' must be an integer")
            overrides[key] = value
        else:
            overrides[key] = _parse_decimal(value, f"policy.{key}")

    if 'categories' in raw_config:
        categories_data = raw_config['categories']
        if not isinstance(categories_data, dict) or not categories_data:
            raise ValueError("'categories' must be a non-empty dictionary")

        merge = raw_config.get('merge_categories', False)
        if not isinstance(merge, bool):
            raise ValueError("'merge_categories' must be a boolean")

        categories = dict(DEFAULT_CATEGORIES) if merge else {}
        for category_id, category_data in categories_data.items():
            if not isinstance(category_data, dict):
                raise ValueError(f"Category '{category_id}' must be a dictionary")
            key = str(category_id).strip().lower()
            categories[key] = _parse_category_config(category_data, f"categories.{category_id}")
        overrides['categories'] = categories

    return replace(DEFAULT_POLICY, **overrides)


def _parse_category_config(data: Dict, path: str) -> CategoryConfig:
    """Parse and validate one category entry.

    ``min_rate`` and ``max_rate`` default to ``default_uplift_rate`` when
    omitted.

    Args:
        data: Category configuration data
        path: Path for error messages

    Returns:
        Validated CategoryConfig

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'default_uplift_rate', 'min_rate', 'max_rate', 'risk'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    if 'default_uplift_rate' not in data:
        raise ValueError(f"Missing required 'default_uplift_rate' in {path}")

    default_rate = _parse_decimal(data['default_uplift_rate'], f"{path}.default_uplift_rate")
    min_rate = _parse_decimal(data.get('min_rate', default_rate), f"{path}.min_rate")
    max_rate = _parse_decimal(data.get('max_rate', default_rate), f"{path}.max_rate")

    risk_str = data.get('risk', CategoryRisk.MEDIUM.value)
    if not isinstance(risk_str, str):
        raise ValueError(f"'risk' in {path} must be a string")
    try:
        risk = CategoryRisk(risk_str.lower())
    except ValueError:
        valid_risks = [risk.value for risk in CategoryRisk]
        raise ValueError(f"'risk' in {path} must be one of: {valid_risks}")

    try:
        return CategoryConfig(
            default_uplift_rate=default_rate,
            min_rate=min_rate,
            max_rate=max_rate,
            risk=risk,
        )
    except ValueError as e:
        raise ValueError(f"Invalid category {path}: {e}")


def _parse_decimal(value, path: str) -> Decimal:
    """Parse a YAML scalar into a non-negative Decimal."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"'{path}' must be a number")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if not parsed.is_finite() or parsed < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return parsed
