"""HTTP routers for the Shithead server."""
