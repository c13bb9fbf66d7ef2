"""HTTP clients for keep-alive checks and full logins."""
