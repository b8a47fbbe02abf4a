# Plazas API database models
# Import all models here for SQLAlchemy discovery

from plazas_api.models.pricing import PricingTemplate, Tariff   # noqa
from plazas_api.models.plaza import Plaza                       # noqa
from plazas_api.models.reservation import Reservation           # noqa
from plazas_api.models.occupancy import Occupancy               # noqa
from plazas_api.models.subscription import Subscription         # noqa
from plazas_api.models.plaza_movement import PlazaMovement      # noqa
