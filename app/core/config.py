from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///causas.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fee distribution per stage only applies to cases billed in this unit.
    REFERENCE_CURRENCY = os.getenv("REFERENCE_CURRENCY", "UF")
    PREPAID_MODE = "prepago"

    STAGES_PAGE_SIZE = 20
    STAGES_MAX_PAGE_SIZE = 100

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = os.getenv("LOG_JSON", "true").strip().lower() == "true"
