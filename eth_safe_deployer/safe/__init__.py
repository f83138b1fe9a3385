"""Safe wallet master copy, call data and proxy deployment."""
