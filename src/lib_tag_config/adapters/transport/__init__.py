"""Document transports: HTTP and local filesystem."""
