# backend/integrations/__init__.py
"""ONVIF transport and WS-Discovery adapters."""
