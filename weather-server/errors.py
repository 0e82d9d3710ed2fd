class WeatherServiceError(Exception):
    pass


class InvalidQueryError(WeatherServiceError):
    """The request was rejected before any upstream call."""


class LocationNotFoundError(WeatherServiceError):
    """Geocoding succeeded but matched nothing."""


class UpstreamError(WeatherServiceError):
    """A weather upstream call failed at the transport or HTTP level."""
