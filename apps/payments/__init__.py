"""Payments app package.

Payment-processor port and its Stripe client, plus the services that set
up booking payments and subscription checkouts.
"""
