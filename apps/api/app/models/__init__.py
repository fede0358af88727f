# Import SQLAlchemy models so they register on Base.metadata
from app.models.bot import Bot  # noqa: F401
from app.models.enums import BotStatus, BotType, OrderStatus, OrderType  # noqa: F401
from app.models.order import Order  # noqa: F401
from app.models.order_number import OrderNumberAllocation  # noqa: F401
from app.models.resume_lock import ResumeLock  # noqa: F401
