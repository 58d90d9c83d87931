from sqlalchemy.orm import Session

from ticketshub.core.config import settings
from ticketshub.models.setting import Setting
from ticketshub.services.pricing_service import PricingPolicy

TAX_RATE_KEY = "TAX_RATE_BPS"
PLATFORM_FEE_KEY = "PLATFORM_FEE_BPS"


def _int_setting(db: Session, key: str, default: int) -> int:
    s = db.get(Setting, key)
    if s and s.int_value is not None:
        return int(s.int_value)
    return default


def get_pricing_policy(db: Session) -> PricingPolicy:
    """Tax and platform-fee rates: settings table first, then environment config."""
    return PricingPolicy(
        tax_rate_bps=_int_setting(db, TAX_RATE_KEY, settings.TAX_RATE_BPS),
        platform_fee_bps=_int_setting(db, PLATFORM_FEE_KEY, settings.PLATFORM_FEE_BPS),
    )
