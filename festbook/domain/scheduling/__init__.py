"""
Scheduling Domain

Turns booking transitions into rows of the notification queue:
- payment reminders 1 hour and 10 minutes before the payment deadline
- the payment-deadline expiry itself
- visit reminders 3 days, 1 day and 5 hours before the visit, for both parties

Booking dates and times are marketplace local time (MARKETPLACE_TIMEZONE);
everything stored in the queue is naive UTC.
"""
