# backend/billing/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/billing.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///billing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "warn" logs invoices that drive stock below zero, "reject" rolls them back
    STOCK_OVERSELL_POLICY = os.environ.get("STOCK_OVERSELL_POLICY", "warn")

    PURCHASE_DEFAULT_PAYMENT_METHOD = os.environ.get("PURCHASE_DEFAULT_PAYMENT_METHOD", "Bank Transfer")
    DOCUMENT_NUMBER_PAD = int(os.environ.get("DOCUMENT_NUMBER_PAD", "4"))
