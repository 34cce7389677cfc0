import enum


class TokenType(str, enum.Enum):
    TRX = "TRX"
    USDT = "USDT"

    @property
    def is_native(self):
        return self is TokenType.TRX

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self):
        return self is not TransactionStatus.PENDING

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Direction(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"
