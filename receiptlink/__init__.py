"""Thermal receipt printing over Bluetooth serial."""
