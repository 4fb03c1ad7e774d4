"""
FastAPI REST endpoint for the AI Trading Arena.

Exposes session triggering, standings, the trade log and provider status
for dashboards and schedulers.
"""
