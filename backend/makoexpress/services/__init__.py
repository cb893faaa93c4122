"""Business services for the delivery marketplace."""
