"""Project-wide constants."""
from typing import List

PRODUCT_CATEGORIES: List[str] = [
    "Electronics",
    "Accessories",
    "Furniture",
    "Stationery",
    "Groceries",
    "Hardware",
    "Packaging",
    "Spare Parts",
    "Other",
]

DISPATCH_REASONS: List[str] = [
    "Sale",
    "Internal Transfer",
    "Damaged Goods",
    "Return to Supplier",
    "Sample",
]

LOW_STOCK_THRESHOLD_DEFAULT: int = 10

# Child nodes under Stockflow/{uid}
PRODUCTS_NODE = "product"
INCOMING_NODE = "incomingLogs"
GATE_PASSES_NODE = "gatePasses"
PROFILE_NODE = "profileData"
COUNTERS_NODE = "counters"

IMAGE_EXTENSIONS: List[str] = ["png", "jpg", "jpeg", "gif", "webp"]

# Sidebar menu labels (keep in sync across app and sidebar)
MENU_DASHBOARD = "\U0001F4C8 Dashboard"
MENU_PRODUCTS = "\U0001F5C2️ Products"
MENU_ADD_PRODUCT = "➕ Add / Edit Product"
MENU_INCOMING = "\U0001F4E5 Incoming Stock"
MENU_OUTGOING = "\U0001F4E4 Outgoing Stock"
MENU_OUTGOING_LOGS = "\U0001F9FE Gate Pass Log"
MENU_SCAN_PASS = "\U0001F4F7 Scan Gate Pass"
MENU_PROFILE = "\U0001F464 Profile"
