"""Service layer of the prompt gateway."""
