"""Users app package.

Members and admins of the booking platform and their subscription tiers.
``apps.users.models.User`` is the AUTH_USER_MODEL; the monthly booking
counter on it is the quota gate used at admission.
"""
