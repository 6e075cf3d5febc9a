"""HTTP routers of the prompt gateway."""
