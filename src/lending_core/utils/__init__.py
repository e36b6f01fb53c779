"""Small shared helpers: decimals, addresses, time windows, retry."""
