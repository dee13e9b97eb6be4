"""Central model registry: import all models so Alembic autodiscover works."""

from fxengine.database import Base  # noqa: F401

from fxengine.models.exchange_rate import ExchangeRate  # noqa: F401
from fxengine.models.favorite import ExchangeRateFavorite  # noqa: F401
from fxengine.models.wealth import AssetAccount, AssetSnapshot  # noqa: F401
