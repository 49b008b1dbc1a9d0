__all__ = ["REPORT_KINDS", "UPLOAD_KINDS", "__version__"]

__version__ = "0.1.0"

# Export order is fixed; every run fetches all three in this order
REPORT_KINDS = (
    "servings",
    "biometrics",
    "notes",
)

# Only these reports are appended to the spreadsheet
UPLOAD_KINDS = (
    "servings",
    "biometrics",
)
