"""
Payment Reminder Configuration Schema.

Defines the reminder policy structure, its defaults, per-client overrides
and the pure merge between them.  Actual values are loaded from YAML at
runtime (see ``dunning_config``).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Self

from dunning_engines.late_fee import LateFeePolicy, LateFeeType
from dunning_engines.reminder_schedule import ReminderLevel
from dunning_kernel.domain.currency import BASE_CURRENCY, CurrencyRegistry
from dunning_kernel.logging_config import get_logger

logger = get_logger("modules.reminders.config")


def _default_schedule() -> dict[ReminderLevel, tuple[int, ...]]:
    return {
        ReminderLevel.GENTLE: (1, 3, 7),
        ReminderLevel.FIRM: (14, 21),
        ReminderLevel.FINAL: (30, 45),
        ReminderLevel.LEGAL: (60,),
    }


def _default_templates() -> dict[ReminderLevel, str]:
    return {level: f"PAYMENT_REMINDER_{level.name}" for level in ReminderLevel}


def _as_decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _normalize_schedule(raw: Mapping[Any, Any]) -> dict[ReminderLevel, tuple[int, ...]]:
    schedule: dict[ReminderLevel, tuple[int, ...]] = {}
    for key, offsets in raw.items():
        try:
            level = ReminderLevel(key)
        except ValueError:
            raise ValueError(
                f"schedule level must be one of {[lvl.value for lvl in ReminderLevel]}, got '{key}'"
            ) from None
        days = tuple(int(d) for d in offsets)
        if any(d < 0 for d in days):
            raise ValueError(f"schedule offsets for '{level.value}' cannot be negative")
        if len(days) != len(set(days)):
            raise ValueError(f"schedule offsets for '{level.value}' must be unique")
        schedule[level] = days
    return schedule


def _normalize_templates(raw: Mapping[Any, str]) -> dict[ReminderLevel, str]:
    templates = _default_templates()
    for key, template in raw.items():
        level = ReminderLevel(key)
        if not template or not str(template).strip():
            raise ValueError(f"email template for '{level.value}' cannot be empty")
        templates[level] = str(template)
    return templates


@dataclass
class ReminderPolicyOverride:
    """
    Per-client policy fields.  ``None`` means "inherit from the base".

    ``email_templates`` merges level by level; every other field replaces
    the base value whole.
    """

    schedule: Mapping[Any, Any] | None = None
    grace_period_days: int | None = None
    max_reminders: int | None = None
    late_fee_enabled: bool | None = None
    late_fee_type: LateFeeType | str | None = None
    late_fee_rate: Decimal | None = None
    flat_fee_amount: Decimal | None = None
    max_late_fee_percentage: Decimal | None = None
    email_templates: Mapping[Any, str] | None = None
    auto_send_enabled: bool | None = None
    pause_on_partial_payment: bool | None = None
    skip_weekends: bool | None = None

    def changes(self) -> dict[str, Any]:
        """Fields this override sets, by name."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown override fields: {sorted(unknown)}")
        return cls(**data)


@dataclass
class ReminderConfig:
    """
    Configuration schema for payment reminders and late fees.

    Field defaults mirror the production policy.  Override at instantiation:

        config = ReminderConfig(
            grace_period_days=5,
            late_fee_type="percentage",
            late_fee_rate=Decimal("1.5"),
        )

    ``late_fee_rate`` is in percent units; ``max_late_fee_percentage`` is a
    fraction of the invoice amount.
    """

    # Escalation schedule: level -> day offsets from the due date
    schedule: Mapping[Any, Any] = field(default_factory=_default_schedule)
    grace_period_days: int = 3
    max_reminders: int = 10

    # Late fees
    late_fee_enabled: bool = True
    late_fee_type: LateFeeType | str = LateFeeType.DAILY
    late_fee_rate: Decimal = Decimal("2")
    flat_fee_amount: Decimal = Decimal("50")
    max_late_fee_percentage: Decimal = Decimal("0.25")
    base_currency: str = BASE_CURRENCY

    # Templates per level
    email_templates: Mapping[Any, str] = field(default_factory=_default_templates)

    # Automation
    auto_send_enabled: bool = True
    pause_on_partial_payment: bool = True
    skip_weekends: bool = True
    max_sends_per_run: int | None = None

    # client_id -> override
    client_overrides: Mapping[str, ReminderPolicyOverride] = field(default_factory=dict)

    def __post_init__(self):
        self.schedule = _normalize_schedule(self.schedule)
        self.email_templates = _normalize_templates(self.email_templates)
        self.late_fee_rate = _as_decimal(self.late_fee_rate)
        self.flat_fee_amount = _as_decimal(self.flat_fee_amount)
        self.max_late_fee_percentage = _as_decimal(self.max_late_fee_percentage)

        if self.grace_period_days < 0:
            raise ValueError("grace_period_days cannot be negative")
        if self.max_reminders < 1:
            raise ValueError("max_reminders must be at least 1")
        if self.late_fee_rate < 0:
            raise ValueError("late_fee_rate cannot be negative")
        if self.flat_fee_amount < 0:
            raise ValueError("flat_fee_amount cannot be negative")
        if self.max_late_fee_percentage < 0:
            raise ValueError("max_late_fee_percentage cannot be negative")
        if self.max_sends_per_run is not None and self.max_sends_per_run < 1:
            raise ValueError("max_sends_per_run must be at least 1 when set")
        if not CurrencyRegistry.is_valid(self.base_currency):
            raise ValueError(f"base_currency '{self.base_currency}' is not supported")

        # Unknown fee types are kept; the calculator charges nothing for them
        parsed = LateFeeType.parse(self.late_fee_type)
        if parsed is None:
            logger.warning(
                "reminder_config_unknown_fee_type",
                extra={"late_fee_type": str(self.late_fee_type)},
            )
        else:
            self.late_fee_type = parsed

        self.client_overrides = MappingProxyType({
            str(client_id): (
                override if isinstance(override, ReminderPolicyOverride)
                else ReminderPolicyOverride.from_dict(override)
            )
            for client_id, override in dict(self.client_overrides).items()
        })

        logger.debug(
            "reminder_config_initialized",
            extra={
                "levels": [level.value for level in self.schedule],
                "grace_period_days": self.grace_period_days,
                "late_fee_enabled": self.late_fee_enabled,
                "late_fee_type": str(getattr(self.late_fee_type, "value", self.late_fee_type)),
                "client_override_count": len(self.client_overrides),
            },
        )

    def fee_policy(self) -> LateFeePolicy:
        """The late-fee slice of this config, for the fee engine."""
        return LateFeePolicy(
            enabled=self.late_fee_enabled,
            fee_type=self.late_fee_type,
            rate=self.late_fee_rate,
            flat_amount=self.flat_fee_amount,
            grace_period_days=self.grace_period_days,
            max_fee_fraction=self.max_late_fee_percentage,
            base_currency=self.base_currency,
        )

    def for_client(self, client_id: str | None) -> ReminderConfig:
        """Effective config for one client."""
        if client_id is None:
            return self
        return resolve_effective_config(self, self.client_overrides.get(client_id))

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the production defaults."""
        logger.info("reminder_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create config from a dictionary (e.g., parsed YAML)."""
        logger.info(
            "reminder_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown reminder config fields: {sorted(unknown)}")
        values = dict(data)
        if "client_overrides" in values:
            values["client_overrides"] = {
                str(client_id): ReminderPolicyOverride.from_dict(override or {})
                for client_id, override in (values["client_overrides"] or {}).items()
            }
        return cls(**values)


def resolve_effective_config(
    base: ReminderConfig,
    override: ReminderPolicyOverride | None,
) -> ReminderConfig:
    """
    Merge a client override onto the base config.  Pure.

    The override wins field by field; template names merge per level.
    The result is a new config, the inputs are untouched.
    """
    if override is None:
        return base
    changes = override.changes()
    if not changes:
        return base
    if "email_templates" in changes:
        changes["email_templates"] = {
            **base.email_templates,
            **{ReminderLevel(k): v for k, v in changes["email_templates"].items()},
        }
    return dataclasses.replace(base, **changes)
