"""Excel export of the cash book."""
