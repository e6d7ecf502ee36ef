"""
Named error conditions raised by the station cache
"""


class StationCacheError(Exception):
    """Base class for station cache errors"""


class NoStationsAvailable(StationCacheError):
    """Neither the base nor the user station store has any records"""

    def __init__(self, message: str = "No station database available"):
        super().__init__(message)
        self.hint = ("Download the base station database or run the caching "
                     "pipeline against your markets to build a user database")


class NoMarketsConfigured(StationCacheError):
    """The caching pipeline was started without any markets"""

    def __init__(self, message: str = "No markets configured"):
        super().__init__(message)
        self.hint = "Add markets (country,postal_code) to the markets CSV or settings"


class LedgerWriteError(StationCacheError):
    """A processing ledger file could not be written"""


class StoreFormatError(StationCacheError):
    """A station store file is not a JSON array of station records"""
