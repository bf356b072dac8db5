"""Routers — registered explicitly in main.py."""
