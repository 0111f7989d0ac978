# src/apis/__init__.py — v1
