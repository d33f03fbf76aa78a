class CoachError(Exception):
    """Base class for errors raised by the coach service."""


class ConfigurationError(CoachError):
    def __init__(self, name: str):
        super().__init__(f"missing required environment variable: {name}")
        self.name = name


class AuthenticationFailed(CoachError):
    pass


class RequestValidationFailed(CoachError):
    pass


class UserNotFound(CoachError, LookupError):
    def __init__(self, user_id: str):
        super().__init__(f"user {user_id} not found")
        self.user_id = user_id


class AdmissionDenied(CoachError):
    def __init__(self, balance: int, cost: int):
        super().__init__(f"能量值不足，需要{cost}点，当前剩余{balance}点")
        self.balance = balance
        self.cost = cost


class UpstreamFailure(CoachError):
    pass


class PersistenceFailure(CoachError):
    pass


class ChannelClosed(CoachError):
    pass
