import enum


class OrderType(str, enum.Enum):
    NORMAL = "NORMAL"
    VIP = "VIP"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"


class BotType(str, enum.Enum):
    NORMAL = "NORMAL"
    VIP = "VIP"


class BotStatus(str, enum.Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
