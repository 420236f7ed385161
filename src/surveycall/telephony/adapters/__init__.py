"""Telephony provider adapters."""
