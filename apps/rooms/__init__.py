"""Rooms app package.

Meeting rooms, the amenities they offer and the periods in which they
cannot be booked. Unavailability periods of one room never overlap; that
is checked whenever a period is written.
"""
