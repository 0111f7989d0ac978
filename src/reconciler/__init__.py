# src/reconciler/__init__.py — v1
