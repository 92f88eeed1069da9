"""
Bookings app.

Bookable events, pending slot reservations and confirmed meetings, plus
the cron jobs that clean up expired reservations and remind guests to pay
their Multibanco vouchers.
"""
