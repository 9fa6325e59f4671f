from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tripsplit.models import (
    AbsoluteSplitMode,
    AllocationRule,
    CarryOverPolicy,
    PercentBase,
    RemainderStrategy,
    RoundingConfig,
    RoundingMode,
    SettlementAlgorithm,
)
from tripsplit.utils.parse import (
    parse_absolute_split,
    parse_carry_over_policy,
    parse_currency_code,
    parse_percent_base,
    parse_remainder_strategy,
    parse_rounding_mode,
    parse_settlement_algorithm,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    default_currency: str = Field("USD", alias="TRIPSPLIT_DEFAULT_CURRENCY")
    rounding_mode: RoundingMode = Field(RoundingMode.HALF_UP, alias="TRIPSPLIT_ROUNDING_MODE")
    remainder_strategy: RemainderStrategy = Field(
        RemainderStrategy.LARGEST_SHARE, alias="TRIPSPLIT_REMAINDER_STRATEGY"
    )
    percent_base: PercentBase = Field(PercentBase.PRE_TAX_ITEM_SUBTOTALS, alias="TRIPSPLIT_PERCENT_BASE")
    absolute_split: AbsoluteSplitMode = Field(AbsoluteSplitMode.PROPORTIONAL, alias="TRIPSPLIT_ABSOLUTE_SPLIT")
    carry_over_policy: CarryOverPolicy = Field(CarryOverPolicy.PAIR, alias="TRIPSPLIT_CARRY_OVER")
    settlement_algorithm: SettlementAlgorithm = Field(SettlementAlgorithm.GREEDY, alias="TRIPSPLIT_ALGORITHM")
    log_level: str = Field("INFO", alias="TRIPSPLIT_LOG_LEVEL")

    @field_validator("default_currency", mode="before")
    @classmethod
    def _currency(cls, v):
        return parse_currency_code(v) if isinstance(v, str) else v

    @field_validator("rounding_mode", mode="before")
    @classmethod
    def _rounding_mode(cls, v):
        return parse_rounding_mode(v)

    @field_validator("remainder_strategy", mode="before")
    @classmethod
    def _remainder_strategy(cls, v):
        return parse_remainder_strategy(v)

    @field_validator("percent_base", mode="before")
    @classmethod
    def _percent_base(cls, v):
        return parse_percent_base(v)

    @field_validator("absolute_split", mode="before")
    @classmethod
    def _absolute_split(cls, v):
        return parse_absolute_split(v)

    @field_validator("carry_over_policy", mode="before")
    @classmethod
    def _carry_over(cls, v):
        return parse_carry_over_policy(v)

    @field_validator("settlement_algorithm", mode="before")
    @classmethod
    def _algorithm(cls, v):
        return parse_settlement_algorithm(v)

    def rounding_config(self) -> RoundingConfig:
        return RoundingConfig(mode=self.rounding_mode, strategy=self.remainder_strategy)

    def allocation_rule(self) -> AllocationRule:
        return AllocationRule(
            percent_base=self.percent_base,
            absolute_split=self.absolute_split,
            rounding=self.rounding_config(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
