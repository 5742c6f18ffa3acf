# Models package: import all models here so Alembic can discover them.

from otw.models.user import User  # noqa: F401
from otw.models.audit import AuditEvent  # noqa: F401
from otw.models.payment_event import PaymentEvent  # noqa: F401
from otw.models.order import Order  # noqa: F401
from otw.models.delivery import DeliveryRequest  # noqa: F401
from otw.models.screenshot_order import ScreenshotOrder  # noqa: F401
from otw.models.driver import Driver, DriverNotification  # noqa: F401
from otw.models.loyalty import LoyaltyAccount  # noqa: F401
from otw.models.menu_item import MenuItem  # noqa: F401
