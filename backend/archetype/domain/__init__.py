"""Domain entities and the business rules attached to them."""
