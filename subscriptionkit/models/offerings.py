"""
Offering models - Products grouped into named, purchasable packages.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from subscriptionkit.models.store import PeriodUnit, StoreProduct

DEFAULT_OFFERING_ID = "default"


class PackageType(str, Enum):
    """Package duration types."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    THREE_MONTH = "three_month"
    SIX_MONTH = "six_month"
    ANNUAL = "annual"
    LIFETIME = "lifetime"
    CUSTOM = "custom"


_MONTH_PACKAGES = {
    1: PackageType.MONTHLY,
    3: PackageType.THREE_MONTH,
    6: PackageType.SIX_MONTH,
}


@dataclass(frozen=True)
class Package:
    """A purchasable package wrapping a platform product."""

    product: StoreProduct

    @property
    def identifier(self) -> str:
        return self.product.product_id

    @property
    def package_type(self) -> PackageType:
        """Infer the package type from the product's subscription period."""
        period = self.product.subscription_period
        if period is None:
            return PackageType.LIFETIME

        if period.unit == PeriodUnit.DAY:
            return PackageType.WEEKLY if period.value == 7 else PackageType.CUSTOM
        if period.unit == PeriodUnit.WEEK:
            return PackageType.WEEKLY
        if period.unit == PeriodUnit.MONTH:
            return _MONTH_PACKAGES.get(period.value, PackageType.CUSTOM)
        if period.unit == PeriodUnit.YEAR:
            return PackageType.ANNUAL
        return PackageType.CUSTOM

    @property
    def localized_price_string(self) -> str:
        return self.product.display_price

    @property
    def price_per_month(self) -> Decimal | None:
        """Price normalized to one month, for comparing packages."""
        period = self.product.subscription_period
        if period is None:
            return None

        value = Decimal(period.value)
        if period.unit == PeriodUnit.DAY:
            months = value / 30
        elif period.unit == PeriodUnit.WEEK:
            months = value / 4
        elif period.unit == PeriodUnit.MONTH:
            months = value
        else:
            months = value * 12

        if months <= 0:
            return None
        return self.product.price / months


@dataclass(frozen=True)
class Offering:
    """A group of packages presented together (e.g. a paywall's product set)."""

    identifier: str
    packages: tuple[Package, ...] = ()

    @property
    def main_package(self) -> Package | None:
        """The monthly package if there is one, otherwise the first package."""
        return self.package(PackageType.MONTHLY) or (self.packages[0] if self.packages else None)

    def package(self, package_type: PackageType) -> Package | None:
        for package in self.packages:
            if package.package_type == package_type:
                return package
        return None

    def is_empty(self) -> bool:
        return not self.packages


@dataclass(frozen=True)
class Offerings:
    """All offerings keyed by identifier."""

    all: dict[str, Offering] = field(default_factory=dict)

    @property
    def current(self) -> Offering | None:
        """The "default" offering if present, otherwise the first one."""
        if DEFAULT_OFFERING_ID in self.all:
            return self.all[DEFAULT_OFFERING_ID]
        return next(iter(self.all.values()), None)

    def __getitem__(self, identifier: str) -> Offering | None:
        return self.all.get(identifier)

    def __len__(self) -> int:
        return len(self.all)
