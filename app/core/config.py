import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class CoreSettings(BaseSettings):
    ENV: str = Field(default="development", validation_alias="APP_ENV")

    # Pricing rule table
    PRICING_CURRENCY: str = "EUR"
    PRICING_BASE_FEE: float = 4.0
    PRICING_PER_KM: float = 0.35
    PRICING_PER_KG: float = 0.45
    PRICING_PER_VOLUME_DM3: float = 0.06
    PRICING_DETOUR_0_5: float = 1.5
    PRICING_DETOUR_6_10: float = 3.0
    PRICING_DETOUR_11_20: float = 6.0
    PRICING_DETOUR_21_30: float = 10.0
    PRICING_DETOUR_30_PLUS: float = 15.0
    PRICING_URGENT_FEE: float = 3.0
    PRICING_EXPRESS_FEE: float = 7.0
    PRICING_FRAGILE_FEE: float = 2.5
    PRICING_INSURANCE_RATE: float = 0.015
    PRICING_MIN_PRICE: float = 6.0
    PRICING_MAX_PRICE: float = 180.0

    # Batch matching
    MATCH_DETOUR_GRACE_MINUTES: int = 5
    MATCH_ROAD_FACTOR: float = 1.4
    MATCH_AVG_SPEED_KMH: float = 45.0
    MATCH_DIRECTION_TOLERANCE: float = 0.03
    MATCH_DEFAULT_ROUTE_MINUTES: float = 90.0
    MATCH_TTL_HOURS: int = 24

    # Live trip sessions
    SESSION_PUSH_MIN_INTERVAL_SECONDS: int = 20
    SESSION_PUSH_MIN_DISTANCE_METERS: int = 120
    SESSION_NOTIFY_COOLDOWN_MINUTES: int = 10
    SESSION_RANK_LIMIT: int = 50
    SESSION_LIST_MAX_LIMIT: int = 100

    # Escalation waves
    ESCALATION_STAGE1_RADIUS_KM: float = 5.0
    ESCALATION_STAGE2_RADIUS_KM: float = 7.0
    ESCALATION_STAGE3_RADIUS_KM: float = 12.0
    ESCALATION_STAGE2_DELAY_MINUTES: int = 5
    ESCALATION_STAGE3_DELAY_MINUTES: int = 10
    ESCALATION_TIP_DELAY_MINUTES: int = 15
    ESCALATION_ACTIVE_WINDOW_HOURS: int = 24
    ESCALATION_LEASE_MINUTES: int = 5
    ESCALATION_POLL_SECONDS: int = 15
    ESCALATION_SEND_ATTEMPTS: int = 2

    # Push delivery
    PUSH_TRANSPORT: str = "in_app"  # in_app | webhook
    PUSH_WEBHOOK_URL: str = ""
    PUSH_WEBHOOK_TOKEN: str = ""
    PUSH_WEBHOOK_TIMEOUT_SECONDS: int = 10

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CoreSettings()
