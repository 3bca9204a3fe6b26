"""Donation services: record store, acknowledgments and the auth provider.

Services take their storage and session explicitly; nothing here reads ambient
global state.
"""
