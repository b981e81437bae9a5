"""Bookings app package.

This app encapsulates the meeting-room booking core: admission of new
bookings, server-side pricing, availability with post-booking buffers,
and the payment saga that finalizes or compensates a booking. Overlap of
non-cancelled bookings in one room is re-checked inside the write.
"""
