"""
Static game data shared by the collector.
"""

# YATA country codes and their display names
COUNTRY_CODES = {
    "mex": "Mexico",
    "cay": "Cayman Islands",
    "can": "Canada",
    "haw": "Hawaii",
    "uni": "United Kingdom",
    "arg": "Argentina",
    "swi": "Switzerland",
    "jap": "Japan",
    "chi": "China",
    "uae": "UAE",
    "sou": "South Africa",
}

# One-way flight times in minutes (standard airstrip)
FLIGHT_TIMES = {
    "mex": 36,
    "cay": 50,
    "can": 58,
    "haw": 188,
    "uni": 222,
    "arg": 234,
    "swi": 246,
    "jap": 316,
    "chi": 338,
    "uae": 380,
    "sou": 416,
}

# Item categories we compute profit for
TRACKED_TYPES = frozenset({"Plushie", "Flower"})

# Pseudo-country used to persist market prices in the history table
MARKET_COUNTRY = "MARKET"

# YATA error envelope codes
YATA_SERVER_ERROR = 1
YATA_USER_ERROR = 2
YATA_RATE_LIMIT = 3
YATA_TORN_API_ERROR = 4

# Local storage keys
STORAGE_API_KEY = "tornApiKey"
STORAGE_ITEM_TYPES = "itemTypeCache"
STORAGE_STOCK_DATA = "stockData"
STORAGE_STOCK_VERSION = "stockDataVersion"
STORAGE_COUNTRY_FILTER = "countryFilter"

# Rate limiter channels
TORN_CHANNEL = "torn"
YATA_CHANNEL = "yata"


def is_tracked_type(item_type) -> bool:
    """Whether an item type belongs to a tracked category."""
    return item_type in TRACKED_TYPES
