from ninja_extra.throttling import AnonRateThrottle, UserRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    rate = "60/min"


class UserDefaultThrottle(UserRateThrottle):
    rate = "100/min"


class CheckoutThrottle(AnonRateThrottle):
    rate = "30/min"


class ScanThrottle(UserRateThrottle):
    rate = "600/min"
